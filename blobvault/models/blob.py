from sqlalchemy import Column, String, Integer, Text, ForeignKey, Index
from sqlalchemy.orm import relationship
from .base import Base


class Blob(Base):
    """
    A stored blob, identified by the sha256 of its content.
    The row is created once per hash; later uploads of the same content never overwrite it.
    """
    __tablename__ = 'blobs'

    sha256 = Column(String(64), primary_key=True)

    # MIME type reported at upload (optional)
    type = Column(Text, nullable=True)

    # Size in bytes
    size = Column(Integer, nullable=False)

    # Unix timestamp of the first upload
    uploaded = Column(Integer, nullable=False)

    __table_args__ = (
        Index('blobs_uploaded', 'uploaded'),
    )

    # Relationships
    owners = relationship("Owner", back_populates="blob_row", passive_deletes=True)

    def __repr__(self):
        return f"<Blob(sha256='{self.sha256[:8]}...', type={self.type!r}, size={self.size})>"


class Owner(Base):
    """
    An ownership edge between a blob and a public key.
    Duplicate edges are allowed; rows go away with their blob.
    """
    __tablename__ = 'owners'

    id = Column(Integer, primary_key=True, autoincrement=True)
    blob = Column(String(64), ForeignKey('blobs.sha256', ondelete='CASCADE'), nullable=False)
    pubkey = Column(String(64), nullable=False)

    __table_args__ = (
        Index('owners_pubkey', 'pubkey'),
    )

    blob_row = relationship("Blob", back_populates="owners")

    def __repr__(self):
        return f"<Owner(blob='{self.blob[:8]}...', pubkey='{self.pubkey[:8]}...')>"


class Accessed(Base):
    """Last time a blob was served or uploaded (unix timestamp)"""
    __tablename__ = 'accessed'

    blob = Column(String(64), primary_key=True)
    timestamp = Column(Integer, nullable=False)

    __table_args__ = (
        Index('accessed_timestamp', 'timestamp'),
    )

    def __repr__(self):
        return f"<Accessed(blob='{self.blob[:8]}...', timestamp={self.timestamp})>"
