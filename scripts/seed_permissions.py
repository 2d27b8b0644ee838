"""
Seed script to populate the permission catalog and default roles.

Run this script after database initialization to create:
- The permission catalog
- Without an argument: the default system roles as shared templates
- With an organization name: that organization, with its own copies of the
  roles and its starting form templates

Usage:
    uv run python -m scripts.seed_permissions
    uv run python -m scripts.seed_permissions "1st Lakeside Scouts"
"""
import asyncio
import sys

from scout_rbac.core.database.engine import get_db, init_db
from scout_rbac.features.permissions.bootstrap import (
    DEFAULT_ROLES,
    provision_organization,
    seed_permission_catalog,
    seed_roles,
)
from scout_rbac.utils import get_logger


log = get_logger(__name__)


async def main(organization_name: str | None = None):
    """Main function to seed permissions and roles."""
    log.info("Starting permission seeding...")

    # Initialize database tables first
    log.info("Initializing database tables...")
    await init_db()

    # Get database session
    async for db in get_db():
        try:
            await seed_permission_catalog(db)

            # Templates and per-organization copies of the same role must not coexist
            if organization_name:
                organization = await provision_organization(db, organization_name)
                log.info(f"Organization '{organization.name}' provisioned with id {organization.id}")
            else:
                await seed_roles(db)

            log.info("Permission seeding completed successfully!")
            log.info("")
            log.info("Default roles:")
            for definition in DEFAULT_ROLES:
                log.info(f"  - {definition['role_name']}: {definition['display_name']} ({definition['data_scope'].value})")

        except Exception as e:
            log.error(f"Error seeding permissions: {e}", exc_info=True)
            await db.rollback()
            raise

        break  # Only use first session


if __name__ == "__main__":
    asyncio.run(main(sys.argv[1] if len(sys.argv) > 1 else None))
