"""Tag and user-tag routes."""

from __future__ import annotations

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from inbox_health.api.deps import Services, get_services

router = APIRouter(tags=["tags"])


class TagCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)


class TagRequest(BaseModel):
    tagId: str = Field(..., min_length=1)


@router.get("/api/tags")
def list_tags(services: Services = Depends(get_services)):
    return services.tags.list_tags()


@router.post("/api/tags")
def create_tag(body: TagCreate, services: Services = Depends(get_services)):
    """Create a tag, or return the existing tag with this name."""
    return services.tags.create(body.name)


@router.get("/api/users")
def list_users(services: Services = Depends(get_services)):
    return services.credentials.list_users()


@router.get("/api/users/{user_id}/tags")
def user_tags(user_id: str, services: Services = Depends(get_services)):
    return services.tags.user_tags(user_id)


@router.post("/api/users/{user_id}/tags")
def add_user_tag(user_id: str, body: TagRequest, services: Services = Depends(get_services)):
    return services.tags.add_to_user(user_id, body.tagId)


@router.delete("/api/users/{user_id}/tags")
def remove_user_tag(user_id: str, body: TagRequest, services: Services = Depends(get_services)):
    return services.tags.remove_from_user(user_id, body.tagId)
