from urllib.parse import quote

from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, Text, func

from urlshort.database import Base

AVATAR_URL = "https://api.dicebear.com/7.x/initials/svg?seed={seed}"


def default_avatar(name: str) -> str:
    return AVATAR_URL.format(seed=quote(name or "", safe=""))


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False)
    email = Column(String(320), unique=True, index=True, nullable=False)
    password = Column(String(255), nullable=False)
    avatar = Column(String(2048), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    def __repr__(self):
        return f"<User id={self.id} email={self.email!r}>"


class ShortLink(Base):
    __tablename__ = "short_links"

    id = Column(Integer, primary_key=True, index=True)
    full_url = Column(Text, nullable=False)
    short_url = Column(String(50), unique=True, index=True, nullable=False)
    clicks = Column(Integer, default=0, server_default="0", nullable=False)
    user_id = Column(Integer, ForeignKey("users.id"), index=True, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    def __repr__(self):
        return f"<ShortLink {self.short_url!r} -> {self.full_url!r} clicks={self.clicks}>"
