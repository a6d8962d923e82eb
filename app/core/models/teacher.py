from sqlalchemy import BigInteger, Column, String

from app.db.session import Base


class Teacher(Base):
    __tablename__ = "teachers"

    id = Column(BigInteger, primary_key=True, autoincrement=False)
    username = Column(String(100), nullable=False, unique=True)
    name = Column(String(200), nullable=False)
    role = Column(String(50), nullable=False, default="teacher")
    password_hash = Column(String(255), nullable=False)
