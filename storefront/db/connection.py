from sqlalchemy import event
from sqlalchemy.ext.asyncio import create_async_engine,async_sessionmaker,AsyncSession
from storefront.config.settings import config_settings
from storefront.db.utils import _normalize_db_url, engine_options

DATABASE_URL=_normalize_db_url(config_settings.DATABASE_URL)

async_engine=create_async_engine(DATABASE_URL,echo=config_settings.DB_ECHO,**engine_options(DATABASE_URL))

async_session=async_sessionmaker(bind=async_engine,class_=AsyncSession,expire_on_commit=False)


if DATABASE_URL.startswith("sqlite"):
    # the sqlite driver's implicit BEGIN breaks savepoints , emit it ourselves
    @event.listens_for(async_engine.sync_engine, "connect")
    def _sqlite_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(async_engine.sync_engine, "begin")
    def _sqlite_begin(conn):
        conn.exec_driver_sql("BEGIN")
