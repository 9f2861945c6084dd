"""Create tables and load demo data.

Usage:
    python -m tracker_core.seed

Demo logins (password / role):
    admin@company.com   Admin@123   ADMIN
    scrum@company.com   Scrum@123   SCRUM_MASTER
    dev@company.com     User@123    USER
"""
import logging
import sys

from sqlalchemy.orm import Session

from . import crud, models
from .api.security import hash_password

logger = logging.getLogger("tracker-core.seed")

DEMO_USERS = [
    ("admin", "admin@company.com", "Sarah Johnson", "Admin@123", models.UserRole.ADMIN, models.TeamRole.ADMIN),
    ("scrum", "scrum@company.com", "Michael Chen", "Scrum@123", models.UserRole.SCRUM_MASTER, models.TeamRole.MEMBER),
    ("dev", "dev@company.com", "Alex Rivera", "User@123", models.UserRole.USER, models.TeamRole.MEMBER),
]


def seed(db: Session) -> bool:
    """
    Insert the demo users, team, project and work item tree.

    Args:
        db: Database session with tables already created

    Returns:
        False if demo data was already present, True if it was inserted
    """
    crud.seed_roadmap_templates(db)

    if crud.get_user_by_email(db, DEMO_USERS[0][1]):
        logger.info("Demo data already present, skipping")
        return False

    users = {}
    for username, email, full_name, password, role, _ in DEMO_USERS:
        users[username] = crud.create_user(
            db,
            username=username,
            email=email,
            password_hash=hash_password(password),
            full_name=full_name,
            role=role,
        )

    team = crud.create_team(
        db,
        name="Alpha Squad",
        description="Core development team for the platform",
        user_id=users["admin"].id,
    )
    for username, _, _, _, _, team_role in DEMO_USERS:
        crud.add_team_member(db, team.id, users[username].id, role=team_role)

    project = crud.create_project(
        db,
        key="ECOMM",
        name="E-Commerce Platform",
        description="Next-gen shopping experience",
        category="IN_HOUSE",
        status=models.ProjectStatus.ACTIVE,
        team_id=team.id,
        user_id=users["admin"].id,
    )

    # EPIC > FEATURE > STORY; a story may not sit directly under an epic
    epic = crud.create_work_item(
        db,
        project_id=project.id,
        work_item_type=models.WorkItemType.EPIC,
        title="User Authentication System",
        description="Implement secure login and registration",
        status=models.WorkItemStatus.IN_PROGRESS,
        priority=models.WorkItemPriority.HIGH,
        reporter_id=users["scrum"].id,
        external_id="ECOMM-001",
    )
    feature = crud.create_work_item(
        db,
        project_id=project.id,
        work_item_type=models.WorkItemType.FEATURE,
        title="Passwordless Login",
        description="Second factor delivered by email",
        status=models.WorkItemStatus.IN_PROGRESS,
        priority=models.WorkItemPriority.HIGH,
        parent_id=epic.id,
        reporter_id=users["scrum"].id,
        external_id="ECOMM-002",
    )
    crud.create_work_item(
        db,
        project_id=project.id,
        work_item_type=models.WorkItemType.STORY,
        title="OTP Verification",
        description="Add email-based one-time password",
        parent_id=feature.id,
        assignee_id=users["dev"].id,
        reporter_id=users["scrum"].id,
        external_id="ECOMM-003",
    )

    logger.info(f"Seeded {len(users)} users, team '{team.name}' and project {project.key}")
    return True


def main() -> int:
    from .api.database import SessionLocal, engine

    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    models.Base.metadata.create_all(bind=engine)
    db = SessionLocal()
    try:
        seed(db)
    except Exception as e:
        logger.error(f"Seeding failed: {e}", exc_info=True)
        db.rollback()
        return 1
    finally:
        db.close()
    return 0


if __name__ == "__main__":
    sys.exit(main())
