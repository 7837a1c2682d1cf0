from __future__ import annotations

import mimetypes
import os
from dataclasses import dataclass, field, asdict
from enum import Enum
from pathlib import Path
from typing import Any


class UserStatus(str, Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


class UserRole(str, Enum):
    USER = "USER"
    ADMIN = "ADMIN"


class BorrowStatus(str, Enum):
    BORROWED = "BORROWED"
    RETURNED = "RETURNED"


class Book:
    """Represents a single book in the catalog."""

    def __init__(self, title: str, author: str, genre: str, rating: int, total_copies: int,
                 description: str, cover_color: str, cover_url: str, video_url: str, summary: str,
                 available_copies: int | None = None, id: str | None = None,
                 created_at: str | None = None) -> None:
        self.id = id
        self.title = title.strip()
        self.author = author.strip()
        self.genre = genre.strip()
        self.rating = rating
        self.total_copies = total_copies
        # New books start with every copy on the shelf
        self.available_copies = total_copies if available_copies is None else available_copies
        self.description = description
        self.cover_color = cover_color
        self.cover_url = cover_url
        self.video_url = video_url
        self.summary = summary
        self.created_at = created_at

    def __str__(self) -> str:  # pragma: no cover - string formatting trivial
        return f"{self.title} by {self.author} ({self.available_copies}/{self.total_copies} available)"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "author": self.author,
            "genre": self.genre,
            "rating": self.rating,
            "total_copies": self.total_copies,
            "available_copies": self.available_copies,
            "description": self.description,
            "cover_color": self.cover_color,
            "cover_url": self.cover_url,
            "video_url": self.video_url,
            "summary": self.summary,
            "created_at": self.created_at,
        }

    @staticmethod
    def from_dict(data: dict) -> "Book":
        return Book(
            id=data.get("id"),
            title=data["title"],
            author=data["author"],
            genre=data["genre"],
            rating=int(data["rating"]),
            total_copies=int(data["total_copies"]),
            available_copies=data.get("available_copies"),
            description=data.get("description") or "",
            cover_color=data.get("cover_color") or "",
            cover_url=data.get("cover_url") or "",
            video_url=data.get("video_url") or "",
            summary=data.get("summary") or "",
            created_at=data.get("created_at"),
        )


class User:
    """A library member. The password hash never leaves the library service."""

    def __init__(self, full_name: str, email: str, university_id: int, university_card: str,
                 id: str | None = None, status: UserStatus | str = UserStatus.PENDING,
                 role: UserRole | str = UserRole.USER, last_activity_date: str | None = None,
                 created_at: str | None = None, password_hash: str | None = None) -> None:
        self.id = id
        self.full_name = full_name.strip()
        self.email = email.strip().lower()
        self.university_id = university_id
        self.university_card = university_card
        self.status = UserStatus(status)
        self.role = UserRole(role)
        self.last_activity_date = last_activity_date
        self.created_at = created_at
        self.password_hash = password_hash

    @property
    def is_admin(self) -> bool:
        return self.role is UserRole.ADMIN

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "full_name": self.full_name,
            "email": self.email,
            "university_id": self.university_id,
            "university_card": self.university_card,
            "status": self.status.value,
            "role": self.role.value,
            "last_activity_date": self.last_activity_date,
            "created_at": self.created_at,
        }

    @staticmethod
    def from_dict(data: dict) -> "User":
        return User(
            id=data.get("id"),
            full_name=data["full_name"],
            email=data["email"],
            university_id=int(data["university_id"]),
            university_card=data["university_card"],
            status=data.get("status") or UserStatus.PENDING,
            role=data.get("role") or UserRole.USER,
            last_activity_date=data.get("last_activity_date"),
            created_at=data.get("created_at"),
            password_hash=data.get("password_hash"),
        )


@dataclass
class BorrowRecord:
    id: str
    user_id: str
    book_id: str
    borrow_date: str
    due_date: str
    return_date: str | None = None
    status: BorrowStatus = BorrowStatus.BORROWED

    def to_dict(self) -> dict:
        data = asdict(self)
        data["status"] = self.status.value
        return data

    @staticmethod
    def from_dict(data: dict) -> "BorrowRecord":
        return BorrowRecord(
            id=data["id"],
            user_id=data["user_id"],
            book_id=data["book_id"],
            borrow_date=data["borrow_date"],
            due_date=data["due_date"],
            return_date=data.get("return_date"),
            status=BorrowStatus(data.get("status") or BorrowStatus.BORROWED),
        )


@dataclass(frozen=True)
class BorrowEligibility:
    is_eligible: bool
    message: str = ""

    def to_dict(self) -> dict:
        return {"isEligible": self.is_eligible, "message": self.message}


@dataclass(frozen=True)
class UploadResult:
    """What the CDN hands back after a successful upload."""

    file_path: str
    file_id: str | None = None
    url: str | None = None
    name: str | None = None
    size: int | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    @staticmethod
    def from_response(data: dict) -> "UploadResult":
        if not data.get("filePath"):
            raise ValueError("Upload response did not include a filePath.")
        known = {"filePath", "fileId", "url", "name", "size"}
        return UploadResult(
            file_path=data["filePath"],
            file_id=data.get("fileId"),
            url=data.get("url"),
            name=data.get("name"),
            size=data.get("size"),
            metadata={k: v for k, v in data.items() if k not in known},
        )


@dataclass(frozen=True)
class SelectedFile:
    """A file picked by the user, as the browser would report it."""

    name: str
    content: bytes
    content_type: str = "application/octet-stream"

    @property
    def size(self) -> int:
        return len(self.content)

    @staticmethod
    def from_path(path: str | os.PathLike) -> "SelectedFile":
        path = Path(path)
        content_type, _ = mimetypes.guess_type(path.name)
        return SelectedFile(
            name=path.name,
            content=path.read_bytes(),
            content_type=content_type or "application/octet-stream",
        )
