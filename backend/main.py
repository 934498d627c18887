from dotenv import load_dotenv
load_dotenv()  # Load environment variables FIRST

"""
Родовід API - граф родинних зв'язків
====================================
FastAPI backend над документним сховищем (Neo4j або in-memory).

Endpoints:
- GET /api/v1/tree - дерево користувача відносно нього
- GET /api/v1/tree/{tree_id}/members - члени дерева з ролями
- GET /api/v1/tree/{tree_id}/invitations - очікуючі запрошення
- GET /api/v1/management - дані сторінки керування деревом
- POST /api/v1/person - додати особу відносно обраного вузла
- PUT /api/v1/person/{id} - змінити дані особи
- PUT /api/v1/person/{id}/relationships - змінити ребра особи
- DELETE /api/v1/person/{id} - видалити особу
- POST/DELETE /api/v1/tree/{tree_id}/admins/{id} - ролі адміністраторів

user_id у query - поточний (автентифікований) користувач.
"""

import logging
from typing import Optional

from fastapi import FastAPI, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

# Локальні модулі
from admin_roles import demote_to_member, promote_to_admin
from config import get_settings
from edge_mutations import update_family_relationships
from email_service import EmailSender, get_email_sender
from errors import FamilyTreeError, InternalError, MissingParametersError, PermissionDeniedError
from invitations import get_pending_invitations
from member_lifecycle import (
    create_family_member,
    delete_family_member,
    get_family_management_data,
    get_family_tree_members,
    update_family_member,
)
from models import (
    CreateMemberRequest,
    DeleteMemberResult,
    OperationResult,
    RelationshipUpdates,
    RelationshipView,
    UpdateMemberRequest,
)
from person_store import PersonStore, get_store
from relationship_view import get_family_tree_data

logger = logging.getLogger(__name__)


# ==================== FastAPI App ====================

app = FastAPI(
    title="Родовід API",
    description="Family tree relationship graph API",
    version="3.0.0"
)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Store instance
db: Optional[PersonStore] = None

# Email collaborator
email_sender: Optional[EmailSender] = None


@app.on_event("startup")
async def startup():
    """Ініціалізація при старті"""
    global db, email_sender
    settings = get_settings()
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    try:
        if db is None:
            db = get_store()
        if email_sender is None:
            email_sender = get_email_sender()
        logger.info("✅ Store ready (backend=%s)", settings.store_backend)
    except Exception:
        logger.exception("❌ Startup error")
        raise


@app.exception_handler(FamilyTreeError)
async def family_tree_error_handler(request: Request, exc: FamilyTreeError):
    if exc.http_status >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.http_status, content=exc.to_dict())


def _db() -> PersonStore:
    if db is None:
        raise InternalError("Database not available")
    return db


# ==================== Guards ====================

def require_tree_member(tree_id: str, user_id: str) -> dict:
    tree = _db().get_tree(tree_id)
    if user_id not in (tree.get("memberUserIds") or []) and user_id != tree.get("ownerUserId"):
        raise PermissionDeniedError("You are not a member of this family tree.")
    return tree


def require_tree_owner(tree_id: str, user_id: str) -> dict:
    tree = _db().get_tree(tree_id)
    if tree.get("ownerUserId") != user_id:
        raise PermissionDeniedError("Only the tree owner can manage admin roles.")
    return tree


# ==================== Health ====================

@app.get("/health")
async def health():
    """Health check"""
    store_ok = db is not None and db.store.ping()
    return {
        "status": "healthy" if store_ok else "degraded",
        "store": get_settings().store_backend,
        "connected": store_ok,
    }


# ==================== Tree ====================

@app.get("/api/v1/tree", response_model=RelationshipView)
async def get_tree(user_id: str = Query(..., description="ID користувача")):
    """Дерево з вузлами відносно user_id (root)"""
    return get_family_tree_data(_db(), user_id)


@app.get("/api/v1/tree/{tree_id}/members")
async def get_tree_members(tree_id: str, user_id: str = Query(...)):
    require_tree_member(tree_id, user_id)
    return {"members": get_family_tree_members(_db(), tree_id)}


@app.get("/api/v1/tree/{tree_id}/invitations")
async def get_tree_invitations(tree_id: str, user_id: str = Query(...)):
    require_tree_member(tree_id, user_id)
    return {"invitations": get_pending_invitations(_db(), tree_id)}


@app.get("/api/v1/management")
async def get_management_data(user_id: str = Query(...)):
    return get_family_management_data(_db(), user_id)


# ==================== Person ====================

@app.post("/api/v1/person", response_model=OperationResult, response_model_exclude_none=True)
async def create_person(payload: CreateMemberRequest, user_id: str = Query(...)):
    """Додати нову особу відносно selectedNodeId"""
    tree_id = payload.user_data.get("familyTreeId")
    if tree_id:
        require_tree_member(tree_id, user_id)
    return create_family_member(
        _db(),
        user_id,
        payload.user_data,
        payload.relation_type,
        payload.selected_node_id,
        payload.options,
        email_sender=email_sender,
    )


@app.put("/api/v1/person/{member_id}", response_model=OperationResult, response_model_exclude_none=True)
async def update_person(member_id: str, payload: UpdateMemberRequest, user_id: str = Query(...)):
    if not payload.updated_data:
        raise MissingParametersError("No data to update")
    return update_family_member(
        _db(), user_id, member_id, payload.updated_data, email_sender=email_sender,
    )


@app.put(
    "/api/v1/person/{member_id}/relationships",
    response_model=OperationResult,
    response_model_exclude_none=True,
)
async def update_relationships(member_id: str, payload: RelationshipUpdates, user_id: str = Query(...)):
    tree_id = _db().get_person(member_id).get("familyTreeId")
    if tree_id:
        require_tree_member(tree_id, user_id)
    return update_family_relationships(_db(), user_id, member_id, payload)


@app.delete("/api/v1/person/{member_id}", response_model=DeleteMemberResult)
async def delete_person(
    member_id: str,
    user_id: str = Query(...),
    family_tree_id: str = Query(..., description="ID дерева"),
):
    """Видалити особу; повертає перебудоване дерево"""
    return delete_family_member(_db(), user_id, member_id, family_tree_id)


# ==================== Admin roles ====================

@app.post("/api/v1/tree/{tree_id}/admins/{member_id}", response_model=OperationResult, response_model_exclude_none=True)
async def add_admin(tree_id: str, member_id: str, user_id: str = Query(...)):
    require_tree_owner(tree_id, user_id)
    return promote_to_admin(_db(), user_id, member_id, tree_id)


@app.delete("/api/v1/tree/{tree_id}/admins/{member_id}", response_model=OperationResult, response_model_exclude_none=True)
async def remove_admin(tree_id: str, member_id: str, user_id: str = Query(...)):
    require_tree_owner(tree_id, user_id)
    return demote_to_member(_db(), user_id, member_id, tree_id)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
