"""Global statistic counter model."""
from sqlalchemy import BigInteger, Column, String

from dbo.database import Base


class Counter(Base):
    __tablename__ = "counters"

    name = Column(String(40), primary_key=True)
    counter = Column(BigInteger, default=0, nullable=False)

    def __repr__(self):
        return f"<Counter(name={self.name}, counter={self.counter})>"
