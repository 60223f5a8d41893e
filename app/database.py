from contextlib import contextmanager
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, scoped_session
from config.config import Config
from app.models.base import Base

# Create database engine
engine = create_engine(
    Config.DATABASE_URL,
    connect_args={'check_same_thread': False} if 'sqlite' in Config.DATABASE_URL else {}
)

# Instances are handed back to services after the session closes
SessionLocal = sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=engine)

# Create scoped session for thread safety
db_session = scoped_session(SessionLocal)


def init_db():
    """Initialize database, create all tables"""
    import app.models  # noqa: F401
    Base.metadata.create_all(bind=engine)


def drop_db():
    """Drop all tables"""
    Base.metadata.drop_all(bind=engine)


@contextmanager
def get_db():
    """Provide a transactional scope for database operations"""
    db = SessionLocal()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


class DatabaseManager:
    """Generic record store operations for a single model"""

    def __init__(self, model_class):
        self.model_class = model_class

    def _filtered(self, db, filters):
        query = db.query(self.model_class)
        for key, value in filters.items():
            query = query.filter(getattr(self.model_class, key) == value)
        return query

    def create(self, **kwargs):
        """Insert a record and return it"""
        with get_db() as db:
            instance = self.model_class(**kwargs)
            db.add(instance)
            db.flush()
            db.refresh(instance)
            return instance

    def get(self, id):
        """Get record by ID, None when missing"""
        with get_db() as db:
            return db.query(self.model_class).filter(self.model_class.id == id).first()

    def get_by(self, **kwargs):
        """First record matching all field values"""
        with get_db() as db:
            return self._filtered(db, kwargs).first()

    def update(self, id, **kwargs):
        """Update a record, None when missing"""
        with get_db() as db:
            instance = db.query(self.model_class).filter(self.model_class.id == id).first()
            if instance:
                for key, value in kwargs.items():
                    setattr(instance, key, value)
                db.flush()
                db.refresh(instance)
            return instance

    def delete_where(self, **kwargs):
        """Delete all records matching the field values, returning how many went"""
        with get_db() as db:
            return self._filtered(db, kwargs).delete(synchronize_session=False)

    def count(self, **kwargs):
        """Count records"""
        with get_db() as db:
            return self._filtered(db, kwargs).count()

    def exists(self, **kwargs):
        """Check if record exists"""
        return self.count(**kwargs) > 0
