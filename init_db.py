#!/usr/bin/env python3
"""
Database initialization script: creates all tables
"""
import sys

from rizara.models import *  # noqa: F401,F403 - registers every model
from rizara.core.database import Base, engine


def create_tables():
    """Create all database tables"""
    try:
        Base.metadata.create_all(bind=engine)
        print("Database tables created:")
        for table_name in Base.metadata.tables.keys():
            print(f"  - {table_name}")
    except Exception as e:
        print(f"Failed to create database tables: {e}")
        sys.exit(1)


if __name__ == "__main__":
    create_tables()
