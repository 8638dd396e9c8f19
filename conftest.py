import pytest
from django.contrib.auth import get_user_model


@pytest.fixture(autouse=True)
def _email_backend(settings):
    settings.EMAIL_BACKEND = "django.core.mail.backends.locmem.EmailBackend"
    settings.SITE_BASE_URL = "http://testserver"
    settings.STRIPE_WEBHOOK_SECRET = "whsec_test"


def _make_user(username, role=None, **extra):
    User = get_user_model()
    user = User.objects.create_user(username=username, email=username, password="pass-1234-word", **extra)
    if role:
        user.profile.role = role
        user.profile.save(update_fields=["role"])
    return user


@pytest.fixture
def door_staff(db):
    return _make_user("door@ems.test", role="STAFF", first_name="Door", last_name="Keeper")


@pytest.fixture
def admin_user(db):
    return _make_user("admin@ems.test", role="ADMIN")


@pytest.fixture
def super_admin(db):
    User = get_user_model()
    return User.objects.create_superuser(username="root@ems.test", email="root@ems.test", password="pass-1234-word")


@pytest.fixture
def staff_client(client, door_staff):
    client.force_login(door_staff)
    return client


@pytest.fixture
def admin_client(client, admin_user):
    client.force_login(admin_user)
    return client
