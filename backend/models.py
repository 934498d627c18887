"""
Моделі Родового дерева
======================
Pydantic моделі для представлення дерева та запитів API.

Документи в сховищі - звичайні словники з camelCase полями
(parentIds, childrenIds, spouseIds, familyTreeId, ...). Моделі нижче
описують лише те, що виходить назовні або приходить ззовні.
"""

from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class RelationType(str, Enum):
    """Ким нова особа приходиться обраному вузлу"""
    CHILD = "child"      # Нова особа - дитина обраного вузла
    PARENT = "parent"    # Нова особа - батько/мати обраного вузла
    SPOUSE = "spouse"    # Нова особа - чоловік/дружина обраного вузла


class RelationKind(str, Enum):
    """Тип ребра у представленні дерева"""
    BLOOD = "blood"
    MARRIED = "married"


class MemberStatus(str, Enum):
    ACTIVE = "active"      # Обліковий запис підтверджено
    INVITED = "invited"    # Запрошення надіслано / ще не підтверджено


class MemberRole(str, Enum):
    OWNER = "owner"
    ADMIN = "admin"
    MEMBER = "member"


class CamelModel(BaseModel):
    """Базова модель: snake_case у Python, camelCase назовні"""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ==================== Представлення дерева ====================

class RelationRef(CamelModel):
    id: str
    type: RelationKind


class NodeAttributes(CamelModel):
    display_name: str = ""
    profile_picture: Optional[str] = None
    family_tree_id: Optional[str] = None
    is_blood_related: bool = False
    tree_owner_id: Optional[str] = None
    email: Optional[str] = None
    phone_number: Optional[str] = None


class TreeNode(CamelModel):
    """Вузол дерева відносно кореневої особи"""
    id: str
    gender: str = "other"
    parents: List[RelationRef] = Field(default_factory=list)
    children: List[RelationRef] = Field(default_factory=list)
    siblings: List[RelationRef] = Field(default_factory=list)
    spouses: List[RelationRef] = Field(default_factory=list)
    attributes: NodeAttributes = Field(default_factory=NodeAttributes)


class RelationshipView(CamelModel):
    tree_nodes: List[TreeNode] = Field(default_factory=list)
    root_node: Optional[str] = None

    def node(self, person_id: str) -> Optional[TreeNode]:
        return next((n for n in self.tree_nodes if n.id == person_id), None)


# ==================== Запити ====================

class RelationshipUpdates(CamelModel):
    """Зміни ребер однієї особи (remove застосовується раніше за add)"""
    add_parents: List[str] = Field(default_factory=list)
    remove_parents: List[str] = Field(default_factory=list)
    add_children: List[str] = Field(default_factory=list)
    remove_children: List[str] = Field(default_factory=list)
    add_spouses: List[str] = Field(default_factory=list)
    remove_spouses: List[str] = Field(default_factory=list)

    def is_empty(self) -> bool:
        return not any(self.model_dump().values())


class CreateMemberOptions(CamelModel):
    """Додаткові ребра при створенні. Відсутній прапорець = без ребра"""
    connect_to_spouse: bool = False
    connect_to_existing_parent: bool = False
    connect_to_children: bool = False


class CreateMemberRequest(CamelModel):
    user_data: Dict[str, Any]
    relation_type: str
    selected_node_id: str
    options: CreateMemberOptions = Field(default_factory=CreateMemberOptions)


class UpdateMemberRequest(CamelModel):
    updated_data: Dict[str, Any]


class OperationResult(CamelModel):
    success: bool = True
    message: Optional[str] = None
    user_id: Optional[str] = None


class DeleteMemberResult(CamelModel):
    success: bool = True
    tree_nodes: List[TreeNode] = Field(default_factory=list)
    root_node: Optional[str] = None
