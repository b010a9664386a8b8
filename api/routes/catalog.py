"""
Catalog administration endpoints.

Each of modules, topics, sub-topics and questions gets the same five routes:

GET    /api/{kind}          → paginated list (any authenticated user)
GET    /api/{kind}/{id}     → one row
POST   /api/{kind}          → create (ADMIN)
PUT    /api/{kind}/{id}     → partial update (ADMIN)
DELETE /api/{kind}/{id}     → soft delete (ADMIN)
"""

import sqlite3

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel

from api.auth import get_current_user, require_admin
from api.database import get_db
from api.models import (
    ModuleIn,
    ModuleUpdate,
    QuestionIn,
    QuestionUpdate,
    SubTopicIn,
    SubTopicUpdate,
    TopicIn,
    TopicUpdate,
    envelope,
)
from performance import catalog
from performance.access import CurrentUser


def _crud_router(kind: str, create_model: type[BaseModel],
                 update_model: type[BaseModel]) -> APIRouter:
    label = catalog.ENTITIES[kind].label
    router = APIRouter(prefix=f"/{kind}", tags=["catalog"])

    @router.get("", summary=f"List {kind}")
    def list_items(
        page: int = Query(1, ge=1),
        limit: int = Query(10, ge=1, le=500),
        search: str | None = Query(None, description="Substring match on the name"),
        module_id: int | None = Query(None, alias="moduleId"),
        topic_id: int | None = Query(None, alias="topicId"),
        sub_topic_id: int | None = Query(None, alias="subTopicId"),
        conn: sqlite3.Connection = Depends(get_db),
        user: CurrentUser = Depends(get_current_user),
    ) -> dict:
        filters = {"module_id": module_id, "topic_id": topic_id,
                   "sub_topic_id": sub_topic_id}
        items, meta = catalog.list_entities(conn, kind, filters, page, limit, search)
        return envelope(f"{label} list retrieved", items, meta)

    @router.get("/{entity_id}", summary=f"Get one of {kind}")
    def get_item(
        entity_id: int,
        conn: sqlite3.Connection = Depends(get_db),
        user: CurrentUser = Depends(get_current_user),
    ) -> dict:
        return envelope(f"{label} retrieved", catalog.get_entity(conn, kind, entity_id))

    @router.post("", summary=f"Create one of {kind}")
    def create_item(
        body: create_model,
        conn: sqlite3.Connection = Depends(get_db),
        admin: CurrentUser = Depends(require_admin),
    ) -> dict:
        created = catalog.create_entity(conn, kind, body.model_dump())
        return envelope(f"{label} created", created)

    @router.put("/{entity_id}", summary=f"Update one of {kind}")
    def update_item(
        entity_id: int,
        body: update_model,
        conn: sqlite3.Connection = Depends(get_db),
        admin: CurrentUser = Depends(require_admin),
    ) -> dict:
        updated = catalog.update_entity(conn, kind, entity_id,
                                        body.model_dump(exclude_unset=True))
        return envelope(f"{label} updated", updated)

    @router.delete("/{entity_id}", summary=f"Deactivate one of {kind}")
    def delete_item(
        entity_id: int,
        conn: sqlite3.Connection = Depends(get_db),
        admin: CurrentUser = Depends(require_admin),
    ) -> dict:
        catalog.deactivate_entity(conn, kind, entity_id)
        return envelope(f"{label} deleted")

    return router


modules_router = _crud_router("modules", ModuleIn, ModuleUpdate)
topics_router = _crud_router("topics", TopicIn, TopicUpdate)
sub_topics_router = _crud_router("sub-topics", SubTopicIn, SubTopicUpdate)
questions_router = _crud_router("questions", QuestionIn, QuestionUpdate)

routers = [modules_router, topics_router, sub_topics_router, questions_router]
