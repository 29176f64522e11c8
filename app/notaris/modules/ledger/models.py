from __future__ import annotations

from datetime import date, datetime

from sqlalchemy import JSON, Boolean, Date, DateTime, ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.notaris.models import Base, User


class Repertorium(Base):
    __tablename__ = "repertorium"
    __table_args__ = (UniqueConstraint("tahun", "nomor_urut", name="uq_repertorium_tahun_nomor_urut"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    # running number within the year, and within the month
    nomor_urut: Mapped[int] = mapped_column(Integer, nullable=False)
    nomor_bulanan: Mapped[int] = mapped_column(Integer, nullable=False)
    tanggal: Mapped[date] = mapped_column(Date, nullable=False)
    sifat_akta: Mapped[str] = mapped_column(String(255), nullable=False)
    nama_penghadap: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    keterangan: Mapped[str | None] = mapped_column(Text, nullable=True)
    is_ppat: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    bulan: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    tahun: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    document_id: Mapped[int | None] = mapped_column(ForeignKey("documents.id", ondelete="SET NULL"), nullable=True)
    created_by_user_id: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)

    created_by: Mapped[User | None] = relationship(lazy="selectin")
    klapper: Mapped[list["Klapper"]] = relationship(back_populates="repertorium", cascade="all, delete-orphan")


class Klapper(Base):
    __tablename__ = "klapper"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    huruf_awal: Mapped[str] = mapped_column(String(1), nullable=False, index=True)
    nama_penghadap: Mapped[str] = mapped_column(String(255), nullable=False)
    sifat_akta: Mapped[str] = mapped_column(String(255), nullable=False)
    nomor_akta: Mapped[int] = mapped_column(Integer, nullable=False)
    tanggal_akta: Mapped[date] = mapped_column(Date, nullable=False)
    bulan: Mapped[int] = mapped_column(Integer, nullable=False)
    tahun: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    repertorium_id: Mapped[int] = mapped_column(ForeignKey("repertorium.id", ondelete="CASCADE"), nullable=False, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)

    repertorium: Mapped[Repertorium] = relationship(back_populates="klapper")
