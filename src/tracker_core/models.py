"""SQLAlchemy database models."""
from datetime import datetime, timezone
from uuid import uuid4
import enum

from sqlalchemy import (
    Column,
    String,
    Text,
    Integer,
    DateTime,
    ForeignKey,
    Enum,
    Boolean,
    UniqueConstraint,
    JSON,
    Uuid,
)
from sqlalchemy.orm import declarative_base, relationship

# Base class for all models
Base = declarative_base()


def utcnow() -> datetime:
    """Current UTC time as a naive datetime (the storage convention for all columns)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _enum_column(enum_cls, **kwargs) -> Column:
    return Column(
        Enum(enum_cls, values_callable=lambda x: [e.value for e in x]),
        **kwargs,
    )


class UserRole(str, enum.Enum):
    """System-wide user role."""

    ADMIN = "ADMIN"
    SCRUM_MASTER = "SCRUM_MASTER"
    PROJECT_MANAGER = "PROJECT_MANAGER"
    USER = "USER"


class TeamRole(str, enum.Enum):
    """Role of a user inside a team."""

    ADMIN = "ADMIN"
    MEMBER = "MEMBER"


class ProjectMemberRole(str, enum.Enum):
    """Temporary project grant tier.

    VIEWER is read-only; MEMBER may create tasks and bugs.
    """

    VIEWER = "VIEWER"
    MEMBER = "MEMBER"


class ProjectStatus(str, enum.Enum):
    """Project lifecycle status (descriptive only, never enforced)."""

    PLANNING = "PLANNING"
    ACTIVE = "ACTIVE"
    COMPLETED = "COMPLETED"
    ARCHIVED = "ARCHIVED"


class WorkItemType(str, enum.Enum):
    """Work item hierarchy levels."""

    EPIC = "EPIC"
    FEATURE = "FEATURE"
    STORY = "STORY"
    TASK = "TASK"
    BUG = "BUG"


class WorkItemStatus(str, enum.Enum):
    """Work item board column."""

    TODO = "TODO"
    IN_PROGRESS = "IN_PROGRESS"
    IN_REVIEW = "IN_REVIEW"
    DONE = "DONE"


class WorkItemPriority(str, enum.Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"


class User(Base):
    """
    Application user.

    Passwords are stored as bcrypt hashes. The system-wide role drives every
    authorization decision together with team and project memberships.
    """

    __tablename__ = "users"

    id = Column(Uuid, primary_key=True, default=uuid4)
    username = Column(String(100), nullable=False, unique=True, index=True)
    email = Column(String(255), nullable=False, unique=True, index=True)
    full_name = Column(String(255))
    password_hash = Column(String(255), nullable=False)
    role = _enum_column(UserRole, nullable=False, default=UserRole.USER, index=True)
    is_active = Column(Boolean, nullable=False, default=True, index=True)
    avatar_url = Column(String(500))

    # Audit fields
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    # Relationships
    team_memberships = relationship("TeamMember", back_populates="user", cascade="all, delete-orphan")
    project_memberships = relationship(
        "ProjectMember",
        back_populates="user",
        cascade="all, delete-orphan",
        foreign_keys="ProjectMember.user_id",
    )

    def __repr__(self) -> str:
        return f"<User {self.email} ({self.role.value if self.role else None})>"


class Team(Base):
    """
    Permanent group of users.

    Members of a team have full access to every project the team owns.
    """

    __tablename__ = "teams"

    id = Column(Uuid, primary_key=True, default=uuid4)
    name = Column(String(255), nullable=False, unique=True)
    description = Column(Text)
    created_by_user_id = Column(Uuid, ForeignKey("users.id", ondelete="SET NULL"), index=True)

    created_at = Column(DateTime, nullable=False, default=utcnow, index=True)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    members = relationship("TeamMember", back_populates="team", cascade="all, delete-orphan")
    projects = relationship("Project", back_populates="team")
    created_by_user = relationship("User", foreign_keys=[created_by_user_id])

    def __repr__(self) -> str:
        return f"<Team {self.name}>"


class TeamMember(Base):
    """Junction table linking users to teams."""

    __tablename__ = "team_members"

    id = Column(Uuid, primary_key=True, default=uuid4)
    team_id = Column(Uuid, ForeignKey("teams.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    role = _enum_column(TeamRole, nullable=False, default=TeamRole.MEMBER)
    joined_at = Column(DateTime, nullable=False, default=utcnow)

    team = relationship("Team", back_populates="members")
    user = relationship("User", back_populates="team_memberships")

    __table_args__ = (
        UniqueConstraint("team_id", "user_id", name="unique_team_user"),
    )

    def __repr__(self) -> str:
        return f"<TeamMember {self.role.value}>"


class Project(Base):
    """
    Project, optionally owned by exactly one team.

    Projects without a team are reachable only by admins and by users holding
    a temporary project grant.
    """

    __tablename__ = "projects"

    id = Column(Uuid, primary_key=True, default=uuid4)
    team_id = Column(Uuid, ForeignKey("teams.id", ondelete="SET NULL"), index=True)

    key = Column(String(10), nullable=False, unique=True, index=True)
    name = Column(String(255), nullable=False)
    description = Column(Text)
    category = Column(String(100))
    status = _enum_column(ProjectStatus, nullable=False, default=ProjectStatus.ACTIVE, index=True)
    start_date = Column(DateTime)
    target_date = Column(DateTime)

    created_at = Column(DateTime, nullable=False, default=utcnow, index=True)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)
    created_by_user_id = Column(Uuid, ForeignKey("users.id", ondelete="SET NULL"), index=True)

    team = relationship("Team", back_populates="projects")
    members = relationship("ProjectMember", back_populates="project", cascade="all, delete-orphan")
    work_items = relationship("WorkItem", back_populates="project", cascade="all, delete-orphan")
    created_by_user = relationship("User", foreign_keys=[created_by_user_id])

    def __repr__(self) -> str:
        return f"<Project {self.key}: {self.name}>"


class ProjectMember(Base):
    """
    Temporary, project-scoped grant for a user outside the owning team.

    Once expires_at is in the past the grant is inert. Rows are never swept;
    expiry is evaluated whenever access is resolved.
    """

    __tablename__ = "project_members"

    id = Column(Uuid, primary_key=True, default=uuid4)
    project_id = Column(Uuid, ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    role = _enum_column(ProjectMemberRole, nullable=False, default=ProjectMemberRole.VIEWER)
    expires_at = Column(DateTime, index=True)
    added_by_user_id = Column(Uuid, ForeignKey("users.id", ondelete="SET NULL"))
    joined_at = Column(DateTime, nullable=False, default=utcnow)

    project = relationship("Project", back_populates="members")
    user = relationship("User", back_populates="project_memberships", foreign_keys=[user_id])

    __table_args__ = (
        UniqueConstraint("project_id", "user_id", name="unique_project_user"),
    )

    def __repr__(self) -> str:
        return f"<ProjectMember {self.role.value} expires={self.expires_at}>"


class WorkItem(Base):
    """
    Typed unit of work inside a project.

    Items form a tree through parent_id; the allowed parent/child type pairs
    live in hierarchy_validation.ALLOWED_CHILDREN.
    """

    __tablename__ = "work_items"

    id = Column(Uuid, primary_key=True, default=uuid4)
    project_id = Column(Uuid, ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True)
    parent_id = Column(Uuid, ForeignKey("work_items.id", ondelete="SET NULL"), index=True)

    external_id = Column(String(50), index=True)
    type = _enum_column(WorkItemType, nullable=False, index=True)
    title = Column(String(255), nullable=False)
    description = Column(Text)
    status = _enum_column(WorkItemStatus, nullable=False, default=WorkItemStatus.TODO, index=True)
    priority = _enum_column(WorkItemPriority, nullable=False, default=WorkItemPriority.MEDIUM)
    estimate = Column(Integer)
    start_date = Column(DateTime)
    end_date = Column(DateTime)

    assignee_id = Column(Uuid, ForeignKey("users.id", ondelete="SET NULL"), index=True)
    reporter_id = Column(Uuid, ForeignKey("users.id", ondelete="SET NULL"), index=True)

    created_at = Column(DateTime, nullable=False, default=utcnow, index=True)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    project = relationship("Project", back_populates="work_items")
    parent = relationship("WorkItem", remote_side=[id], back_populates="children")
    children = relationship("WorkItem", back_populates="parent")
    assignee = relationship("User", foreign_keys=[assignee_id])
    reporter = relationship("User", foreign_keys=[reporter_id])

    def __repr__(self) -> str:
        return f"<WorkItem {self.type.value}: {self.title}>"


class RoadmapTemplate(Base):
    """Reusable roadmap layout: a named list of streams plus placeholder projects."""

    __tablename__ = "roadmap_templates"

    id = Column(Uuid, primary_key=True, default=uuid4)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=False, default="")
    streams = Column(JSON, nullable=False, default=list)
    projects = Column(JSON, nullable=False, default=list)

    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    def __repr__(self) -> str:
        return f"<RoadmapTemplate {self.name}>"


class OtpChallenge(Base):
    """
    Pending one-time login code.

    Only a hash of the code is stored. A challenge is single-use and is
    deleted on success, on expiry, or once attempts run out.
    """

    __tablename__ = "otp_challenges"

    id = Column(Uuid, primary_key=True, default=uuid4)
    email = Column(String(255), nullable=False, unique=True, index=True)
    code_hash = Column(String(64), nullable=False)
    expires_at = Column(DateTime, nullable=False, index=True)
    attempts = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, nullable=False, default=utcnow)

    def __repr__(self) -> str:
        return f"<OtpChallenge {self.email} attempts={self.attempts}>"
