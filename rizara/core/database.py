from sqlalchemy import create_engine, inspect, text
from sqlalchemy.ext.declarative import declarative_base
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool
from rizara.config import settings
from rizara.utils.logger import db_logger


def build_engine(url: str):
    """Create an engine; SQLite (local/tests) gets a single shared connection"""
    if url.startswith("sqlite"):
        return create_engine(
            url,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    return create_engine(
        url,
        pool_pre_ping=True,          # drop dead connections before use
        pool_recycle=300,
        pool_size=20,
        max_overflow=30,
        pool_timeout=30,
        echo_pool=False,
    )


engine = build_engine(settings.database_url)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


def init_database():
    """Create missing tables and add missing columns to existing ones"""
    try:
        inspector = inspect(engine)
        existing_tables = inspector.get_table_names()

        # register every model on Base.metadata
        import rizara.models.otp
        import rizara.models.user

        expected_tables = list(Base.metadata.tables.keys())
        missing_tables = [
            table for table in expected_tables if table not in existing_tables]

        if missing_tables:
            db_logger.warning(f"Missing tables: {missing_tables}, creating")
            Base.metadata.create_all(bind=engine)
            db_logger.info(f"Tables ready: {expected_tables}")
            return

        for table_name in expected_tables:
            existing_columns = {col['name']
                                for col in inspector.get_columns(table_name)}
            expected_columns = {
                col.name for col in Base.metadata.tables[table_name].columns}

            for col_name in expected_columns - existing_columns:
                col = Base.metadata.tables[table_name].columns[col_name]
                col_type = str(col.type).upper()
                nullable = "NULL" if col.nullable else "NOT NULL"
                default = f"DEFAULT {col.default.arg}" if col.default is not None and col.default.is_scalar else ""

                alter_sql = f"ALTER TABLE {table_name} ADD COLUMN {col_name} {col_type} {nullable} {default}".strip()

                try:
                    with engine.connect() as conn:
                        conn.execute(text(alter_sql))
                        conn.commit()
                    db_logger.warning(f"Added column {table_name}.{col_name}")
                except Exception as e:
                    db_logger.error(
                        f"Failed to add column {table_name}.{col_name}: {e}")

    except Exception as e:
        db_logger.error(f"Database initialization failed: {e}")
        raise


def get_db():
    """Request-scoped database session"""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
