import pytest

from wms.auth import get_current_user
from wms.main import app
from wms.models import User


@pytest.fixture(autouse=True)
def override_auth(request):
    if request.node.get_closest_marker("real_auth"):
        yield
        return

    app.dependency_overrides[get_current_user] = lambda: User(
        id=1,
        company_id=1,
        email="admin@warehouse.local",
        full_name="Test Admin",
        password_hash="x",
        is_admin=True,
        is_active=True,
        role="admin",
    )
    yield
    app.dependency_overrides.pop(get_current_user, None)
