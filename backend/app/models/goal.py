from sqlalchemy import Column, Integer, String, Text, Date, DateTime, Numeric, ForeignKey, Enum
from datetime import datetime
import enum
import uuid
from app.core.database import Base

class GoalStatus(str, enum.Enum):
    active = "active"
    completed_success = "completed_success"
    completed_failure = "completed_failure"
    abandoned = "abandoned"

TERMINAL_STATUSES = (GoalStatus.completed_success, GoalStatus.completed_failure, GoalStatus.abandoned)

def new_id() -> str:
    return str(uuid.uuid4())

class Goal(Base):
    __tablename__ = "goals"

    id = Column(String(36), primary_key=True, default=new_id)
    user_id = Column(String, index=True, nullable=False)
    parent_goal_id = Column(String(36), ForeignKey("goals.id", ondelete="SET NULL"), index=True, nullable=True)

    name = Column(String(50), nullable=False)
    target_value = Column(Numeric(14, 4), nullable=False)
    deadline = Column(Date, nullable=False)
    status = Column(Enum(GoalStatus, name="goal_status"), nullable=False, default=GoalStatus.active, index=True)

    reflection_notes = Column(Text, nullable=True)
    ai_summary = Column(Text, nullable=True)
    ai_generation_attempts = Column(Integer, nullable=False, default=0)
    abandonment_reason = Column(Text, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

class GoalProgress(Base):
    __tablename__ = "goal_progress"

    id = Column(String(36), primary_key=True, default=new_id)
    goal_id = Column(String(36), ForeignKey("goals.id", ondelete="CASCADE"), index=True, nullable=False)
    value = Column(Numeric(14, 4), nullable=False)
    notes = Column(String(150), nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)
