"""CRUD operations for users, teams, projects, memberships and work items."""
import logging
from datetime import datetime, timezone
from typing import Optional
from uuid import UUID

from sqlalchemy import and_, or_, select
from sqlalchemy.orm import Session

from . import models

logger = logging.getLogger("tracker-core.crud")


def _to_naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is not None and value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


# ============================================================================
# Store (point lookups for authorization)
# ============================================================================

class Store:
    """
    Point lookups consumed by the authorization layer.

    Each call hits the database; nothing is cached between requests.
    """

    def __init__(self, db: Session):
        self.db = db

    def get_user(self, user_id: UUID) -> Optional[models.User]:
        return get_user_by_id(self.db, user_id)

    def get_project(self, project_id: UUID) -> Optional[models.Project]:
        return get_project(self.db, project_id)

    def get_work_item(self, work_item_id: UUID) -> Optional[models.WorkItem]:
        return get_work_item(self.db, work_item_id)

    def get_team_members(self, team_id: UUID) -> list[models.TeamMember]:
        return get_team_members(self.db, team_id)

    def get_project_members(self, project_id: UUID) -> list[models.ProjectMember]:
        return get_project_members(self.db, project_id)


# ============================================================================
# User CRUD Operations
# ============================================================================

def create_user(
    db: Session,
    username: str,
    email: str,
    password_hash: str,
    full_name: Optional[str] = None,
    role: models.UserRole = models.UserRole.USER,
    avatar_url: Optional[str] = None,
) -> models.User:
    """
    Create a new user.

    Args:
        db: Database session
        username: Unique username
        email: Unique email address
        password_hash: bcrypt hash of the user's password
        full_name: Optional display name
        role: System-wide role
        avatar_url: Optional avatar URL

    Returns:
        Created user instance
    """
    db_user = models.User(
        username=username,
        email=email.lower(),
        password_hash=password_hash,
        full_name=full_name,
        role=role,
        avatar_url=avatar_url,
    )
    db.add(db_user)
    db.commit()
    db.refresh(db_user)
    logger.debug(f"Created user {db_user.id} ({db_user.email}) with role {role.value}")
    return db_user


def get_user_by_id(db: Session, user_id: UUID) -> Optional[models.User]:
    """
    Get a user by ID.

    Args:
        db: Database session
        user_id: User UUID

    Returns:
        User if found, None otherwise
    """
    return db.query(models.User).filter(models.User.id == user_id).first()


def get_user_by_email(db: Session, email: str) -> Optional[models.User]:
    """
    Get a user by email address.

    Args:
        db: Database session
        email: Email address (case-insensitive)

    Returns:
        User if found, None otherwise
    """
    return db.query(models.User).filter(models.User.email.ilike(email)).first()


def get_user_by_username(db: Session, username: str) -> Optional[models.User]:
    return db.query(models.User).filter(models.User.username == username).first()


def list_users(
    db: Session,
    skip: int = 0,
    limit: int = 50,
    search: Optional[str] = None,
    role: Optional[models.UserRole] = None,
    include_inactive: bool = True,
) -> tuple[list[models.User], int]:
    """
    List users with optional filtering and pagination.

    Args:
        db: Database session
        skip: Number of records to skip
        limit: Maximum number of records to return
        search: Substring match on username, email and full name
        role: Filter by system-wide role
        include_inactive: Include deactivated users

    Returns:
        Tuple of (users, total count)
    """
    query = db.query(models.User)

    if search:
        pattern = f"%{search}%"
        query = query.filter(
            or_(
                models.User.username.ilike(pattern),
                models.User.email.ilike(pattern),
                models.User.full_name.ilike(pattern),
            )
        )
    if role:
        query = query.filter(models.User.role == role)
    if not include_inactive:
        query = query.filter(models.User.is_active.is_(True))

    total = query.count()
    users = query.order_by(models.User.username).offset(skip).limit(limit).all()
    return users, total


def update_user(
    db: Session,
    user_id: UUID,
    full_name: Optional[str] = None,
    avatar_url: Optional[str] = None,
    role: Optional[models.UserRole] = None,
    password_hash: Optional[str] = None,
) -> Optional[models.User]:
    """
    Update a user's profile fields.

    Only non-None arguments are applied.

    Returns:
        Updated user or None if not found
    """
    db_user = get_user_by_id(db, user_id)
    if not db_user:
        return None

    if full_name is not None:
        db_user.full_name = full_name
    if avatar_url is not None:
        db_user.avatar_url = avatar_url
    if role is not None:
        db_user.role = role
    if password_hash is not None:
        db_user.password_hash = password_hash

    db.commit()
    db.refresh(db_user)
    logger.debug(f"Updated user {user_id}")
    return db_user


def set_user_active(db: Session, user_id: UUID, is_active: bool) -> Optional[models.User]:
    """Activate or deactivate a user. Returns None if not found."""
    db_user = get_user_by_id(db, user_id)
    if not db_user:
        return None

    db_user.is_active = is_active
    db.commit()
    db.refresh(db_user)
    logger.info(f"User {user_id} is_active set to {is_active}")
    return db_user


# ============================================================================
# Team CRUD Operations
# ============================================================================

def create_team(
    db: Session,
    name: str,
    description: Optional[str] = None,
    user_id: Optional[UUID] = None,
) -> models.Team:
    """
    Create a new team.

    Args:
        db: Database session
        name: Unique team name
        description: Optional description
        user_id: Optional creator user ID

    Returns:
        Created team instance
    """
    db_team = models.Team(
        name=name,
        description=description,
        created_by_user_id=user_id,
    )
    db.add(db_team)
    db.commit()
    db.refresh(db_team)
    logger.debug(f"Created team {db_team.id} ({db_team.name})")
    return db_team


def get_team(db: Session, team_id: UUID) -> Optional[models.Team]:
    return db.query(models.Team).filter(models.Team.id == team_id).first()


def get_team_by_name(db: Session, name: str) -> Optional[models.Team]:
    return db.query(models.Team).filter(models.Team.name.ilike(name)).first()


def get_teams(db: Session) -> list[models.Team]:
    """Get all teams ordered by name."""
    return db.query(models.Team).order_by(models.Team.name).all()


def get_teams_for_user(db: Session, user_id: UUID) -> list[models.Team]:
    """Get the teams a user belongs to."""
    return (
        db.query(models.Team)
        .join(models.TeamMember, models.TeamMember.team_id == models.Team.id)
        .filter(models.TeamMember.user_id == user_id)
        .order_by(models.Team.name)
        .all()
    )


def delete_team(db: Session, team_id: UUID) -> bool:
    """
    Delete a team and its memberships.

    Returns:
        True if deleted, False if not found
    """
    db_team = get_team(db, team_id)
    if not db_team:
        return False

    db.delete(db_team)
    db.commit()
    logger.debug(f"Deleted team {team_id}")
    return True


def add_team_member(
    db: Session,
    team_id: UUID,
    user_id: UUID,
    role: models.TeamRole = models.TeamRole.MEMBER,
) -> models.TeamMember:
    """
    Add a user to a team.

    Raises:
        ValueError: If the user is already a member
    """
    if is_team_member(db, team_id, user_id):
        raise ValueError("User is already a member of this team")

    db_member = models.TeamMember(team_id=team_id, user_id=user_id, role=role)
    db.add(db_member)
    db.commit()
    db.refresh(db_member)
    logger.debug(f"Added user {user_id} to team {team_id} with role {role.value}")
    return db_member


def get_team_members(db: Session, team_id: UUID) -> list[models.TeamMember]:
    """Get all members of a team."""
    return (
        db.query(models.TeamMember)
        .filter(models.TeamMember.team_id == team_id)
        .order_by(models.TeamMember.joined_at)
        .all()
    )


def is_team_member(db: Session, team_id: UUID, user_id: UUID) -> bool:
    return (
        db.query(models.TeamMember)
        .filter(
            and_(
                models.TeamMember.team_id == team_id,
                models.TeamMember.user_id == user_id,
            )
        )
        .first()
        is not None
    )


def remove_team_member(db: Session, team_id: UUID, user_id: UUID) -> bool:
    """
    Remove a user from a team.

    Returns:
        True if removed, False if not found
    """
    db_member = (
        db.query(models.TeamMember)
        .filter(
            and_(
                models.TeamMember.team_id == team_id,
                models.TeamMember.user_id == user_id,
            )
        )
        .first()
    )
    if not db_member:
        return False

    db.delete(db_member)
    db.commit()
    logger.debug(f"Removed user {user_id} from team {team_id}")
    return True


# ============================================================================
# Project CRUD Operations
# ============================================================================

def create_project(
    db: Session,
    key: str,
    name: str,
    description: Optional[str] = None,
    category: Optional[str] = None,
    status: models.ProjectStatus = models.ProjectStatus.ACTIVE,
    team_id: Optional[UUID] = None,
    start_date: Optional[datetime] = None,
    target_date: Optional[datetime] = None,
    user_id: Optional[UUID] = None,
) -> models.Project:
    """
    Create a new project.

    Args:
        db: Database session
        key: Short uppercase project key (unique)
        name: Project name
        description: Optional description
        category: Optional free-form category
        status: Project status
        team_id: Optional owning team
        start_date: Optional start date
        target_date: Optional target date
        user_id: Optional creator user ID

    Returns:
        Created project instance
    """
    db_project = models.Project(
        key=key,
        name=name,
        description=description,
        category=category,
        status=status,
        team_id=team_id,
        start_date=_to_naive_utc(start_date),
        target_date=_to_naive_utc(target_date),
        created_by_user_id=user_id,
    )
    db.add(db_project)
    db.commit()
    db.refresh(db_project)
    logger.debug(f"Created project {db_project.id} ({db_project.key})")
    return db_project


def get_project(db: Session, project_id: UUID) -> Optional[models.Project]:
    """
    Get a project by ID.

    Args:
        db: Database session
        project_id: Project UUID

    Returns:
        Project instance or None if not found
    """
    return db.query(models.Project).filter(models.Project.id == project_id).first()


def get_project_by_key(db: Session, key: str) -> Optional[models.Project]:
    return db.query(models.Project).filter(models.Project.key == key).first()


def get_projects(
    db: Session,
    status_filter: Optional[models.ProjectStatus] = None,
    team_id: Optional[UUID] = None,
) -> list[models.Project]:
    """Get all projects, optionally filtered by status or owning team."""
    query = db.query(models.Project)
    if status_filter:
        query = query.filter(models.Project.status == status_filter)
    if team_id:
        query = query.filter(models.Project.team_id == team_id)
    return query.order_by(models.Project.created_at.desc()).all()


def get_projects_by_team(db: Session, team_id: UUID) -> list[models.Project]:
    return get_projects(db, team_id=team_id)


def get_projects_for_user(
    db: Session,
    user: models.User,
    status_filter: Optional[models.ProjectStatus] = None,
) -> list[models.Project]:
    """
    Get the projects a user can see.

    Admins see every project. Everyone else sees projects owned by their
    teams plus projects they hold an unexpired temporary grant on. An expired
    grant hides the project even from members of its team.

    Args:
        db: Database session
        user: Requesting user
        status_filter: Optional status filter

    Returns:
        List of visible projects, newest first
    """
    if user.role == models.UserRole.ADMIN:
        return get_projects(db, status_filter=status_filter)

    now = models.utcnow()
    team_ids = select(models.TeamMember.team_id).where(models.TeamMember.user_id == user.id)
    granted_ids = (
        select(models.ProjectMember.project_id)
        .where(
            models.ProjectMember.user_id == user.id,
            or_(
                models.ProjectMember.expires_at.is_(None),
                models.ProjectMember.expires_at >= now,
            ),
        )
    )
    expired_ids = select(models.ProjectMember.project_id).where(
        models.ProjectMember.user_id == user.id,
        models.ProjectMember.expires_at < now,
    )

    query = db.query(models.Project).filter(
        or_(
            models.Project.team_id.in_(team_ids),
            models.Project.id.in_(granted_ids),
        ),
        ~models.Project.id.in_(expired_ids),
    )
    if status_filter:
        query = query.filter(models.Project.status == status_filter)
    return query.order_by(models.Project.created_at.desc()).all()


def update_project(
    db: Session,
    project_id: UUID,
    **fields,
) -> Optional[models.Project]:
    """
    Update a project.

    Args:
        db: Database session
        project_id: Project UUID
        **fields: Column values to set; keys must be Project attributes

    Returns:
        Updated project or None if not found
    """
    db_project = get_project(db, project_id)
    if not db_project:
        return None

    for field, value in fields.items():
        if field in ("start_date", "target_date"):
            value = _to_naive_utc(value)
        setattr(db_project, field, value)

    db.commit()
    db.refresh(db_project)
    logger.debug(f"Updated project {project_id}: {sorted(fields)}")
    return db_project


def delete_project(db: Session, project_id: UUID) -> bool:
    """
    Delete a project with its work items and temporary grants.

    Returns:
        True if deleted, False if not found
    """
    db_project = get_project(db, project_id)
    if not db_project:
        return False

    db.delete(db_project)
    db.commit()
    logger.debug(f"Deleted project {project_id}")
    return True


# ============================================================================
# Project Member (temporary access) Operations
# ============================================================================

def add_project_member(
    db: Session,
    project_id: UUID,
    user_id: UUID,
    role: models.ProjectMemberRole = models.ProjectMemberRole.VIEWER,
    expires_at: Optional[datetime] = None,
    added_by_user_id: Optional[UUID] = None,
) -> models.ProjectMember:
    """
    Grant a user temporary access to a project.

    Args:
        db: Database session
        project_id: Project UUID
        user_id: User UUID
        role: VIEWER or MEMBER
        expires_at: Optional expiry; None means the grant never expires
        added_by_user_id: User who created the grant

    Returns:
        Created project member instance

    Raises:
        ValueError: If the user already holds a grant on this project
    """
    if get_project_member(db, project_id, user_id):
        raise ValueError("User already has access to this project")

    db_member = models.ProjectMember(
        project_id=project_id,
        user_id=user_id,
        role=role,
        expires_at=_to_naive_utc(expires_at),
        added_by_user_id=added_by_user_id,
    )
    db.add(db_member)
    db.commit()
    db.refresh(db_member)
    logger.debug(
        f"Granted user {user_id} {role.value} access to project {project_id} until {db_member.expires_at}"
    )
    return db_member


def get_project_member(
    db: Session,
    project_id: UUID,
    user_id: UUID,
) -> Optional[models.ProjectMember]:
    return (
        db.query(models.ProjectMember)
        .filter(
            and_(
                models.ProjectMember.project_id == project_id,
                models.ProjectMember.user_id == user_id,
            )
        )
        .first()
    )


def get_project_members(db: Session, project_id: UUID) -> list[models.ProjectMember]:
    """
    Get all temporary grants on a project, expired ones included.

    Args:
        db: Database session
        project_id: Project UUID

    Returns:
        List of project members
    """
    return (
        db.query(models.ProjectMember)
        .filter(models.ProjectMember.project_id == project_id)
        .order_by(models.ProjectMember.joined_at)
        .all()
    )


def remove_project_member(db: Session, project_id: UUID, user_id: UUID) -> bool:
    """
    Revoke a user's temporary project grant.

    Returns:
        True if removed, False if not found
    """
    db_member = get_project_member(db, project_id, user_id)
    if not db_member:
        return False

    db.delete(db_member)
    db.commit()
    logger.debug(f"Removed user {user_id} from project {project_id}")
    return True


# ============================================================================
# Work Item CRUD Operations
# ============================================================================

def create_work_item(
    db: Session,
    project_id: UUID,
    work_item_type: models.WorkItemType,
    title: str,
    description: Optional[str] = None,
    status: models.WorkItemStatus = models.WorkItemStatus.TODO,
    priority: models.WorkItemPriority = models.WorkItemPriority.MEDIUM,
    parent_id: Optional[UUID] = None,
    assignee_id: Optional[UUID] = None,
    reporter_id: Optional[UUID] = None,
    external_id: Optional[str] = None,
    estimate: Optional[int] = None,
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
) -> models.WorkItem:
    """
    Create a work item.

    Parent/child validation is the caller's job; this only persists.

    Returns:
        Created work item instance
    """
    db_item = models.WorkItem(
        project_id=project_id,
        type=work_item_type,
        title=title,
        description=description,
        status=status,
        priority=priority,
        parent_id=parent_id,
        assignee_id=assignee_id,
        reporter_id=reporter_id,
        external_id=external_id,
        estimate=estimate,
        start_date=_to_naive_utc(start_date),
        end_date=_to_naive_utc(end_date),
    )
    db.add(db_item)
    db.commit()
    db.refresh(db_item)
    logger.debug(f"Created work item {db_item.id} ({work_item_type.value}) in project {project_id}")
    return db_item


def get_work_item(db: Session, work_item_id: UUID) -> Optional[models.WorkItem]:
    return db.query(models.WorkItem).filter(models.WorkItem.id == work_item_id).first()


def get_work_items_by_project(
    db: Session,
    project_id: UUID,
    work_item_type: Optional[models.WorkItemType] = None,
    status_filter: Optional[models.WorkItemStatus] = None,
    assignee_id: Optional[UUID] = None,
) -> list[models.WorkItem]:
    """Get the work items of a project with optional filters, oldest first."""
    query = db.query(models.WorkItem).filter(models.WorkItem.project_id == project_id)
    if work_item_type:
        query = query.filter(models.WorkItem.type == work_item_type)
    if status_filter:
        query = query.filter(models.WorkItem.status == status_filter)
    if assignee_id:
        query = query.filter(models.WorkItem.assignee_id == assignee_id)
    return query.order_by(models.WorkItem.created_at).all()


def get_parent_map(db: Session, project_id: UUID) -> dict[UUID, Optional[UUID]]:
    """
    Map every work item in a project to its parent ID.

    The map is what hierarchy_validation walks for cycle detection.
    """
    rows = (
        db.query(models.WorkItem.id, models.WorkItem.parent_id)
        .filter(models.WorkItem.project_id == project_id)
        .all()
    )
    return {item_id: parent_id for item_id, parent_id in rows}


def get_child_types(db: Session, work_item_id: UUID) -> list[models.WorkItemType]:
    rows = (
        db.query(models.WorkItem.type)
        .filter(models.WorkItem.parent_id == work_item_id)
        .all()
    )
    return [row[0] for row in rows]


def update_work_item(
    db: Session,
    work_item_id: UUID,
    **fields,
) -> Optional[models.WorkItem]:
    """
    Update a work item.

    Args:
        db: Database session
        work_item_id: Work item UUID
        **fields: Column values to set; keys must be WorkItem attributes

    Returns:
        Updated work item or None if not found
    """
    db_item = get_work_item(db, work_item_id)
    if not db_item:
        return None

    for field, value in fields.items():
        if field in ("start_date", "end_date"):
            value = _to_naive_utc(value)
        setattr(db_item, field, value)

    db.commit()
    db.refresh(db_item)
    logger.debug(f"Updated work item {work_item_id}: {sorted(fields)}")
    return db_item


def delete_work_item(db: Session, work_item_id: UUID) -> bool:
    """
    Delete a work item. Its children are kept and detached from it.

    Returns:
        True if deleted, False if not found
    """
    db_item = get_work_item(db, work_item_id)
    if not db_item:
        return False

    db.delete(db_item)
    db.commit()
    logger.debug(f"Deleted work item {work_item_id}")
    return True


# ============================================================================
# Roadmap Template Operations
# ============================================================================

DEFAULT_ROADMAP_TEMPLATES = [
    {
        "name": "Product Roadmap",
        "description": "Core product streams for feature planning",
        "streams": ["Growth", "Retention", "Platform", "Infrastructure", "Experience"],
    },
    {
        "name": "Digital Marketing Plan",
        "description": "Marketing channels and campaign planning",
        "streams": ["SEO", "Paid Ads", "Social Media", "Email Marketing", "Content"],
    },
    {
        "name": "Sales & CRM",
        "description": "Sales pipeline and lead management",
        "streams": ["Lead Generation", "Outreach", "Pipeline", "Closing", "Account Management"],
    },
]


def get_roadmap_templates(db: Session) -> list[models.RoadmapTemplate]:
    return db.query(models.RoadmapTemplate).order_by(models.RoadmapTemplate.created_at, models.RoadmapTemplate.name).all()


def get_roadmap_template(db: Session, template_id: UUID) -> Optional[models.RoadmapTemplate]:
    return db.query(models.RoadmapTemplate).filter(models.RoadmapTemplate.id == template_id).first()


def create_roadmap_template(
    db: Session,
    name: str,
    description: Optional[str] = None,
    streams: Optional[list[str]] = None,
    projects: Optional[list] = None,
) -> models.RoadmapTemplate:
    db_template = models.RoadmapTemplate(
        name=name,
        description=description or "",
        streams=streams or [],
        projects=projects or [],
    )
    db.add(db_template)
    db.commit()
    db.refresh(db_template)
    logger.debug(f"Created roadmap template {db_template.id} ({name})")
    return db_template


def update_roadmap_template(
    db: Session,
    template_id: UUID,
    name: str,
    description: Optional[str] = None,
    streams: Optional[list[str]] = None,
    projects: Optional[list] = None,
) -> Optional[models.RoadmapTemplate]:
    """
    Replace a roadmap template's contents.

    Returns:
        Updated template or None if not found
    """
    db_template = get_roadmap_template(db, template_id)
    if not db_template:
        return None

    db_template.name = name
    db_template.description = description or ""
    db_template.streams = streams or []
    db_template.projects = projects or []
    db.commit()
    db.refresh(db_template)
    return db_template


def delete_roadmap_template(db: Session, template_id: UUID) -> bool:
    db_template = get_roadmap_template(db, template_id)
    if not db_template:
        return False

    db.delete(db_template)
    db.commit()
    return True


def seed_roadmap_templates(db: Session) -> list[models.RoadmapTemplate]:
    """
    Insert the default roadmap templates when none exist.

    Returns:
        The existing templates if any are present, else the new defaults
    """
    existing = get_roadmap_templates(db)
    if existing:
        return existing

    for template in DEFAULT_ROADMAP_TEMPLATES:
        db.add(
            models.RoadmapTemplate(
                name=template["name"],
                description=template["description"],
                streams=list(template["streams"]),
                projects=[],
            )
        )
    db.commit()
    logger.info(f"Seeded {len(DEFAULT_ROADMAP_TEMPLATES)} default roadmap templates")
    return get_roadmap_templates(db)
