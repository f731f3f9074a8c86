import pytest
from sqlalchemy import func, select

from pbl_toolkit.core.config import get_settings
from pbl_toolkit.core.exceptions import ConfigurationError
from pbl_toolkit.core.security import verify_password
from pbl_toolkit.db.models import Faculty
from pbl_toolkit.db.seed import seed_super_admin


@pytest.fixture
def seed_settings():
    return get_settings().model_copy(update={
        "seed_admin_email": "Root@Example.edu",
        "seed_admin_password": "bootstrap-passw0rd",
    })


async def test_creates_super_admin_once(db, seed_settings):
    created = await seed_super_admin(db, seed_settings)
    await db.commit()

    assert created.email == "root@example.edu"
    assert created.role == "super_admin"
    assert created.status == "approved"
    assert created.is_active is True
    assert verify_password("bootstrap-passw0rd", created.password_hash)

    assert await seed_super_admin(db, seed_settings) is None
    count = (await db.execute(select(func.count(Faculty.id)))).scalar_one()
    assert count == 1


async def test_requires_credentials(db):
    settings = get_settings().model_copy(update={"seed_admin_email": None, "seed_admin_password": None})
    with pytest.raises(ConfigurationError):
        await seed_super_admin(db, settings)

