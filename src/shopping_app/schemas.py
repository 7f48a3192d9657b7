from pydantic import Field, model_validator

from src.inventory_app.schemas import OwnershipType
from src.schemas import HexColor, NonBlank, RequestModel


class CategoryCreate(RequestModel):
    name: NonBlank = Field(max_length=50)
    color: HexColor | None = None


class CategoryUpdate(RequestModel):
    name: NonBlank | None = Field(default=None, max_length=50)
    color: HexColor | None = None


class ItemCreate(RequestModel):
    name: NonBlank = Field(max_length=200)
    category_id: int | None = None
    details: str | None = Field(default=None, max_length=1000)
    photo_urls: list[str] = []
    notes: str | None = Field(default=None, max_length=1000)
    task_id: int | None = None


class ItemUpdate(RequestModel):
    name: NonBlank | None = Field(default=None, max_length=200)
    category_id: int | None = None
    details: str | None = Field(default=None, max_length=1000)
    photo_urls: list[str] | None = None
    notes: str | None = Field(default=None, max_length=1000)
    task_id: int | None = None


class ItemToggle(RequestModel):
    is_completed: bool


class TaskLink(RequestModel):
    item_ids: list[int] = Field(min_length=1)
    task_id: int | None = None


class InventoryFromItem(RequestModel):
    """A bought item that should also be kept in the inventory."""

    item_id: int
    name: NonBlank | None = Field(default=None, max_length=200)
    category_id: int | None = None
    details: str | None = Field(default=None, max_length=1000)
    ownership_type: OwnershipType = OwnershipType.HOUSEHOLD
    owner_ids: list[int] = []


class CompleteBatch(RequestModel):
    item_ids: list[int] = Field(min_length=1)
    comment: str | None = Field(default=None, max_length=5000)
    photo_urls: list[str] = []
    items_to_inventory: list[InventoryFromItem] = []

    @model_validator(mode="after")
    def check_inventory_items(self):
        unknown = [
            entry.item_id
            for entry in self.items_to_inventory
            if entry.item_id not in self.item_ids
        ]
        if unknown:
            raise ValueError(
                f"items_to_inventory references items outside the batch: {unknown}"
            )
        return self
