"""
家庭维度的访问控制。

孩子属于某个家庭，只有家庭成员能看到孩子的数据（就诊、疾病、审计历史）。
  - owner / parent   → 可读可写
  - read_only        → 只读
"""

from .models import Child, Family, FamilyMember


def _user_id(user):
    if user is None or not getattr(user, 'is_authenticated', False):
        return None
    return user.id


def get_family_ids_for_user(user):
    """用户所属的家庭 ID 列表。"""
    user_id = _user_id(user)
    if user_id is None:
        return []
    return list(
        FamilyMember.objects.filter(user_id=user_id).values_list('family_id', flat=True)
    )


def get_accessible_child_ids(user):
    family_ids = get_family_ids_for_user(user)
    if not family_ids:
        return []
    return list(Child.objects.filter(family_id__in=family_ids).values_list('id', flat=True))


def get_or_create_default_family(user):
    """
    返回用户作为 owner 的家庭；没有则新建一个 "My Family" 并把用户设为 owner。
    """
    membership = (
        FamilyMember.objects.filter(user=user, role='owner')
        .select_related('family')
        .order_by('created_at')
        .first()
    )
    if membership is not None:
        return membership.family

    family = Family.objects.create(name='My Family')
    FamilyMember.objects.create(family=family, user=user, role='owner')
    return family


def can_access_child(user, child_id):
    user_id = _user_id(user)
    if user_id is None:
        return False
    return FamilyMember.objects.filter(
        user_id=user_id,
        family__children__id=child_id,
    ).exists()


def can_edit_child(user, child_id):
    user_id = _user_id(user)
    if user_id is None:
        return False
    return FamilyMember.objects.filter(
        user_id=user_id,
        family__children__id=child_id,
        role__in=FamilyMember.EDIT_ROLES,
    ).exists()
