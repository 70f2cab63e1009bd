from collections import namedtuple

from config import ROLE_MANAGER, ROLE_MEMBER
from errors import Forbidden, InvalidArgument

# ============================================
# Actor: 每個 request 解析出的身分
# ============================================

class Actor(namedtuple('Actor', ['id', 'name', 'email', 'role'])):
    """
    已驗證的使用者身分

    由 auth guard 建立,明確傳入每個 service 函數。
    只包含公開欄位,沒有密碼等憑證資料。
    """
    __slots__ = ()

    @classmethod
    def from_user(cls, user):
        return cls(id=user.id, name=user.name, email=user.email, role=user.role)

    @property
    def is_manager(self):
        return self.role == ROLE_MANAGER

    @property
    def is_member(self):
        return self.role == ROLE_MEMBER


# ============================================
# Role guard
# ============================================

def require_role(actor, *roles):
    """actor.role 不在 roles 裡就拒絕"""
    if actor.role not in roles:
        raise Forbidden(f"Access denied: requires role {' or '.join(roles)}")
    return actor


# ============================================
# TaskUpdate: 部分更新的欄位集合
# ============================================

class _Unset:
    """欄位沒有出現在 request 裡"""

    def __repr__(self):
        return 'UNSET'

    def __bool__(self):
        return False


UNSET = _Unset()


class TaskUpdate:
    """
    任務的部分更新

    每個欄位若是 UNSET 表示 request 沒有帶,更新時保持原值;
    None 是合法的值 (例如 assigned_to=None 代表取消指派)。
    """

    FIELDS = ('title', 'content', 'images', 'status', 'priority', 'assigned_to')

    def __init__(self, title=UNSET, content=UNSET, images=UNSET,
                 status=UNSET, priority=UNSET, assigned_to=UNSET):
        self.title = title
        self.content = content
        self.images = images
        self.status = status
        self.priority = priority
        self.assigned_to = assigned_to

    @classmethod
    def from_dict(cls, data):
        return cls(**{field: data[field] for field in cls.FIELDS if field in data})

    def is_set(self, field):
        return getattr(self, field) is not UNSET

    def present_fields(self):
        return frozenset(field for field in self.FIELDS if self.is_set(field))

    def __repr__(self):
        values = ', '.join(f'{field}={getattr(self, field)!r}' for field in self.present_fields())
        return f'TaskUpdate({values})'


# ============================================
# 任務更新權限 (依角色分派)
# ============================================

class TaskCapability:
    """
    某個角色對任務的更新能力

    editable_fields 是這個角色可以改的欄位
    """
    name = 'none'
    editable_fields = frozenset()

    def check(self, task, actor, update):
        pass

    def apply(self, task, actor, update):
        """檢查權限後套用更新,回傳實際變更內容"""
        self.check(task, actor, update)

        changes = {}
        for field in TaskUpdate.FIELDS:
            if field not in self.editable_fields or not update.is_set(field):
                continue
            old_value = getattr(task, field)
            new_value = getattr(update, field)
            if old_value != new_value:
                changes[field] = {'old': old_value, 'new': new_value}
                setattr(task, field, new_value)
        return changes


class ManagerTaskCapability(TaskCapability):
    name = ROLE_MANAGER
    editable_fields = frozenset(TaskUpdate.FIELDS)

    def check(self, task, actor, update):
        if update.is_set('title') and not (update.title or '').strip():
            raise InvalidArgument('Task title is required')

        # 重新指派時也要確認是團隊成員
        if update.is_set('assigned_to') and update.assigned_to is not None:
            if not task.team.has_member(update.assigned_to):
                raise InvalidArgument('Assigned user is not a member of this team')

    def apply(self, task, actor, update):
        if update.is_set('title') and update.title:
            update.title = update.title.strip()
        return super().apply(task, actor, update)


class MemberTaskCapability(TaskCapability):
    name = ROLE_MEMBER
    editable_fields = frozenset(['status'])

    def check(self, task, actor, update):
        if task.assigned_to is None or task.assigned_to != actor.id:
            raise Forbidden('You can only update tasks assigned to you')

        not_allowed = update.present_fields() - self.editable_fields
        if not_allowed:
            raise Forbidden(
                f"Members can only update task status (not allowed: {', '.join(sorted(not_allowed))})"
            )


class NoTaskCapability(TaskCapability):
    """未知角色: 不套用任何欄位"""
    name = 'none'


TASK_CAPABILITIES = {
    ROLE_MANAGER: ManagerTaskCapability(),
    ROLE_MEMBER: MemberTaskCapability(),
}


def task_capability_for(actor):
    return TASK_CAPABILITIES.get(actor.role, NoTaskCapability())


def can_view_task(actor, task):
    """團隊 manager、被指派者或建立者可以查看"""
    return actor.id in (task.team.manager_id, task.assigned_to, task.created_by)
