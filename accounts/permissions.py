from django.contrib.auth.decorators import user_passes_test

ROLE_RANK = {"STAFF": 1, "ADMIN": 2, "SUPER_ADMIN": 3}


def role_of(user):
    if not user.is_authenticated or not user.is_active:
        return None
    if user.is_superuser:
        return "SUPER_ADMIN"
    profile = getattr(user, "profile", None)
    return profile.role if profile else None


def has_role(user, minimum):
    role = role_of(user)
    return bool(role) and ROLE_RANK.get(role, 0) >= ROLE_RANK[minimum]


is_super = user_passes_test(lambda u: has_role(u, "SUPER_ADMIN"))
is_admin = user_passes_test(lambda u: has_role(u, "ADMIN"))
is_staff_member = user_passes_test(lambda u: has_role(u, "STAFF"))
