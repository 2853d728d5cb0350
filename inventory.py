"""Catalog and ledger operations for a single account's items."""
import logging
from typing import Any, Dict, List, Optional

from pydantic import ValidationError

from database import ACTIVITIES, ITEMS, DocumentStore, new_id, utc_now_iso
from errors import InvalidRequestError, NotFoundError
from images import ImageStore, is_remote
from schemas import Activity, Item, ItemCreate, ItemUpdate, LossPayload, SalePayload

logger = logging.getLogger(__name__)

SALE = "sale"
LOSS = "loss"
PROTECTED_FIELDS = {"id", "userId", "dateAdded"}


def _find_owned(items: List[Dict[str, Any]], user_id: str, item_id: str) -> int:
    for index, record in enumerate(items):
        if record.get("id") == item_id and record.get("userId") == user_id:
            return index
    return -1


def list_items(store: DocumentStore, user_id: str) -> List[Item]:
    items = []
    for record in store.get_documents(ITEMS, userId=user_id):
        try:
            items.append(Item.model_validate(record))
        except ValidationError as e:
            logger.warning(f"Skipping unreadable item {record.get('id')!r} for user {user_id}: {e}")
    return items


def get_item(store: DocumentStore, user_id: str, item_id: str) -> Item:
    items = store.load(ITEMS)
    index = _find_owned(items, user_id, item_id)
    if index == -1:
        raise NotFoundError("Item not found")
    return Item.model_validate(items[index])


def create_item(store: DocumentStore, images: ImageStore, user_id: str, payload: ItemCreate) -> Item:
    item_id = new_id()
    item_image = images.save(payload.item_image, "items", item_id) if payload.item_image else None
    item = Item(
        id=item_id,
        user_id=user_id,
        name=payload.name,
        stock=payload.stock,
        price=payload.price,
        description=payload.description,
        item_image=item_image,
        date_added=utc_now_iso(),
        metadata={k: v for k, v in payload.metadata.items() if k not in PROTECTED_FIELDS},
    )
    store.create_document(ITEMS, item)
    return item


def update_item(store: DocumentStore, images: ImageStore, user_id: str, item_id: str, payload: ItemUpdate) -> Item:
    with store.locked(ITEMS):
        items = store.load(ITEMS)
        index = _find_owned(items, user_id, item_id)
        if index == -1:
            raise NotFoundError("Item not found")
        current = Item.model_validate(items[index])

        changes = {
            k: v
            for k, v in payload.model_dump(exclude_unset=True, exclude={"item_image", "metadata"}).items()
            if v is not None
        }
        extras = {k: v for k, v in payload.metadata.items() if k not in PROTECTED_FIELDS}
        changes["metadata"] = {**current.metadata, **extras}

        if payload.item_image:
            saved = images.save(payload.item_image, "items", item_id)
            if saved:
                if current.item_image and current.item_image != saved and not is_remote(current.item_image):
                    images.delete(current.item_image)
                changes["item_image"] = saved

        updated = current.model_copy(update=changes)
        items[index] = updated.model_dump(by_alias=True)
        store.save(ITEMS, items)
    return updated


def delete_item(store: DocumentStore, images: ImageStore, user_id: str, item_id: str) -> None:
    """Delete an item, its image and every activity recorded against it."""
    with store.locked(ITEMS, ACTIVITIES):
        items = store.load(ITEMS)
        index = _find_owned(items, user_id, item_id)
        if index == -1:
            raise NotFoundError("Item not found")
        item_image = items[index].get("itemImage")
        activities = store.load(ACTIVITIES)
        store.save_all(
            {
                ITEMS: [item for item in items if item.get("id") != item_id],
                ACTIVITIES: [act for act in activities if act.get("itemId") != item_id],
            }
        )
        images.delete(item_image)
    logger.info(f"Deleted item {item_id} for user {user_id}")


def _record_activity(
    store: DocumentStore,
    user_id: str,
    payload: SalePayload,
    kind: str,
    loss_type: Optional[str] = None,
) -> Activity:
    with store.locked(ITEMS, ACTIVITIES):
        items = store.load(ITEMS)
        index = _find_owned(items, user_id, payload.item_id)
        if index == -1:
            raise NotFoundError("Item not found")
        item = Item.model_validate(items[index])
        if item.stock < payload.quantity:
            raise InvalidRequestError("Not enough stock available")

        activity = Activity(
            id=new_id(),
            user_id=user_id,
            item_id=item.id,
            item_name=item.name,
            type=kind,
            loss_type=loss_type,
            quantity=payload.quantity,
            amount=payload.amount,
            date=utc_now_iso(),
        )
        activities = store.load(ACTIVITIES)
        activities.append(activity.model_dump(by_alias=True, exclude_none=True))
        items[index] = {**items[index], "stock": item.stock - payload.quantity}

        store.save_all({ITEMS: items, ACTIVITIES: activities})
    logger.info(f"Recorded {kind} of {payload.quantity} x {item.id} for user {user_id}")
    return activity


def record_sale(store: DocumentStore, user_id: str, payload: SalePayload) -> Activity:
    return _record_activity(store, user_id, payload, SALE)


def record_loss(store: DocumentStore, user_id: str, payload: LossPayload) -> Activity:
    return _record_activity(store, user_id, payload, LOSS, loss_type=payload.loss_type)
