"""User registration, login and profile management."""
import hashlib
import logging
import secrets
from typing import Any, Dict, List, Optional

from config import settings
from database import ACTIVITIES, ITEMS, USERS, DocumentStore, new_id, utc_now_iso
from errors import InvalidRequestError, NotFoundError, UnauthorizedError
from images import ImageStore, is_remote
from schemas import RegisterPayload, User, UserUpdate

logger = logging.getLogger(__name__)

DEFAULT_PASSWORD = "defaultPassword"
PROTECTED_FIELDS = {"id", "createdAt", "passwordSalt"}

# Password hashing

PBKDF2_ITERATIONS = 200_000

def hash_password(password: str, salt: Optional[str] = None) -> tuple[str, str]:
    if not salt:
        salt = secrets.token_hex(16)
    dk = hashlib.pbkdf2_hmac(
        "sha256", password.encode(), bytes.fromhex(salt), PBKDF2_ITERATIONS
    )
    return dk.hex(), salt


def verify_password(password: str, user: User) -> bool:
    if not user.password_salt:
        # accounts written before passwords were hashed
        return secrets.compare_digest(password.encode(), user.password.encode())
    dk_hex, _ = hash_password(password, user.password_salt)
    return secrets.compare_digest(dk_hex, user.password)


def _same_email(a: Any, b: Any) -> bool:
    return isinstance(a, str) and isinstance(b, str) and a.strip().lower() == b.strip().lower()


def _find(users: List[Dict[str, Any]], user_id: str) -> int:
    for index, record in enumerate(users):
        if record.get("id") == user_id:
            return index
    return -1


def register(store: DocumentStore, images: ImageStore, payload: RegisterPayload) -> User:
    email = str(payload.email)
    with store.locked(USERS):
        users = store.load(USERS)
        if any(_same_email(u.get("email"), email) for u in users):
            raise InvalidRequestError("User already exists")

        user_id = new_id()
        pwd_hash, salt = hash_password(payload.password or DEFAULT_PASSWORD)
        profile_pic = None
        if payload.profile_pic:
            profile_pic = images.save(payload.profile_pic, "users", user_id)
        user = User(
            id=user_id,
            email=email,
            password=pwd_hash,
            password_salt=salt,
            name=payload.name,
            business_name=payload.business_name,
            business_type=payload.business_type,
            profile_pic=profile_pic or settings.PLACEHOLDER_AVATAR,
            created_at=utc_now_iso(),
            metadata=payload.metadata,
        )
        users.append(user.model_dump(by_alias=True))
        store.save(USERS, users)
    logger.info(f"Registered user {user_id}")
    return user


def login(store: DocumentStore, email: str, password: str) -> User:
    for record in store.load(USERS):
        if not _same_email(record.get("email"), email):
            continue
        user = User.model_validate(record)
        if verify_password(password, user):
            return user
    raise UnauthorizedError("Invalid credentials")


def find_user(store: DocumentStore, user_id: str) -> Optional[User]:
    for record in store.load(USERS):
        if record.get("id") == user_id:
            return User.model_validate(record)
    return None


def get_user(store: DocumentStore, user_id: str) -> User:
    user = find_user(store, user_id)
    if user is None:
        raise NotFoundError("User not found")
    return user


def list_users(store: DocumentStore) -> List[User]:
    return [User.model_validate(record) for record in store.load(USERS)]


def update_user(store: DocumentStore, images: ImageStore, user_id: str, payload: UserUpdate) -> User:
    with store.locked(USERS):
        users = store.load(USERS)
        index = _find(users, user_id)
        if index == -1:
            raise NotFoundError("User not found - Account may have been deleted")
        current = User.model_validate(users[index])

        changes = payload.model_dump(exclude_unset=True, exclude={"profile_pic", "password", "metadata"})
        if "email" in changes:
            if changes["email"] is None:
                del changes["email"]
            else:
                changes["email"] = str(changes["email"])
                if any(_same_email(u.get("email"), changes["email"]) for i, u in enumerate(users) if i != index):
                    raise InvalidRequestError("Email already in use")
        if payload.password:
            changes["password"], changes["password_salt"] = hash_password(payload.password)

        extras = {k: v for k, v in payload.metadata.items() if k not in PROTECTED_FIELDS}
        changes["metadata"] = {**current.metadata, **extras}

        if payload.profile_pic:
            saved = images.save(payload.profile_pic, "users", user_id)
            if saved:
                if current.profile_pic and current.profile_pic != saved and not is_remote(current.profile_pic):
                    images.delete(current.profile_pic)
                changes["profile_pic"] = saved

        updated = current.model_copy(update=changes)
        users[index] = updated.model_dump(by_alias=True)
        store.save(USERS, users)
    return updated


def delete_user(store: DocumentStore, images: ImageStore, user_id: str) -> None:
    """Delete a user together with their items, activities and image files."""
    with store.locked(USERS, ITEMS, ACTIVITIES):
        users = store.load(USERS)
        index = _find(users, user_id)
        if index == -1:
            raise NotFoundError("User not found")
        profile_pic = users[index].get("profilePic")
        items = store.load(ITEMS)
        owned = [item for item in items if item.get("userId") == user_id]
        activities = store.load(ACTIVITIES)

        store.save_all(
            {
                USERS: [u for u in users if u.get("id") != user_id],
                ITEMS: [item for item in items if item.get("userId") != user_id],
                ACTIVITIES: [act for act in activities if act.get("userId") != user_id],
            }
        )
        images.delete(profile_pic)
        for item in owned:
            images.delete(item.get("itemImage"))
    logger.info(f"Deleted user {user_id} with {len(owned)} items")
