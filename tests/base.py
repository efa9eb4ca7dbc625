import unittest

from sqlalchemy.orm import sessionmaker

from messenger.db.database import Base, build_engine
from messenger.db import models  # noqa: F401
from messenger.db import conversation_crud, user_crud


class DatabaseTestCase(unittest.TestCase):
    """Fresh in-memory database for every test"""

    def setUp(self):
        self.engine = build_engine("sqlite://")
        Base.metadata.create_all(bind=self.engine)
        self.SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=self.engine)
        self.db = self.SessionLocal()

    def tearDown(self):
        self.db.close()
        Base.metadata.drop_all(bind=self.engine)
        self.engine.dispose()

    def make_user(self, name):
        user, _ = user_crud.create_or_get_user(self.db, name)
        return user

    def make_pair(self, first, second):
        return conversation_crud.create_conversation(self.db, None, False, [first.id, second.id])

    def make_group(self, name, *members):
        return conversation_crud.create_conversation(self.db, name, True, [m.id for m in members])
