from datetime import datetime

from sqlalchemy import Boolean, Column, DateTime, Float, ForeignKey, Integer, JSON, String, Text
from sqlalchemy.orm import declarative_base, relationship

Base = declarative_base()


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, autoincrement=True)
    username = Column(String, nullable=False, unique=True)
    password_hash = Column(String, nullable=False)
    full_name = Column(String, nullable=False)
    department = Column(String, nullable=False, default="")
    role = Column(String, nullable=False, default="employee")
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    notifications = relationship("Notification", back_populates="user", cascade="all, delete-orphan")


class WorkLocation(Base):
    __tablename__ = "work_locations"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String, nullable=False)
    description = Column(String, nullable=True)
    building = Column(String, nullable=True)
    area = Column(String, nullable=True)
    map_position_x = Column(Float, nullable=True)
    map_position_y = Column(Float, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)


class MapBackground(Base):
    __tablename__ = "map_backgrounds"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String, nullable=False)
    description = Column(String, nullable=True)
    image_url = Column(String, nullable=False)
    width = Column(Integer, nullable=False, default=800)
    height = Column(Integer, nullable=False, default=600)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)


class Permit(Base):
    __tablename__ = "permits"

    id = Column(Integer, primary_key=True, autoincrement=True)
    permit_id = Column(String, nullable=False, unique=True)
    type = Column(String, nullable=False, default="general")
    status = Column(String, nullable=False, default="draft")

    description = Column(Text, nullable=False, default="")
    location = Column(String, nullable=False, default="")
    work_location_id = Column(Integer, ForeignKey("work_locations.id"), nullable=True)
    department = Column(String, nullable=False, default="")
    requestor_name = Column(String, nullable=False, default="")
    contact_number = Column(String, nullable=True)
    emergency_contact = Column(String, nullable=True)
    additional_comments = Column(Text, nullable=True)
    created_by = Column(Integer, ForeignKey("users.id"), nullable=True)

    start_date = Column(DateTime, nullable=True)
    end_date = Column(DateTime, nullable=True)
    work_started_at = Column(DateTime, nullable=True)
    work_completed_at = Column(DateTime, nullable=True)

    selected_hazards = Column(JSON, nullable=False, default=list)
    hazard_notes = Column(Text, nullable=False, default="{}")
    identified_hazards = Column(Text, nullable=True)
    overall_risk = Column(String, nullable=True)
    immediate_actions = Column(Text, nullable=True)
    before_work_starts = Column(Text, nullable=True)
    compliance_notes = Column(Text, nullable=True)

    department_head = Column(String, nullable=True)
    department_head_approval = Column(Boolean, nullable=False, default=False)
    department_head_approval_date = Column(DateTime, nullable=True)
    safety_officer = Column(String, nullable=True)
    safety_officer_approval = Column(Boolean, nullable=False, default=False)
    safety_officer_approval_date = Column(DateTime, nullable=True)
    maintenance_approver = Column(String, nullable=True)
    maintenance_approval = Column(Boolean, nullable=False, default=False)
    maintenance_approval_date = Column(DateTime, nullable=True)
    rejection_reason = Column(Text, nullable=True)

    map_position_x = Column(Float, nullable=True)
    map_position_y = Column(Float, nullable=True)

    performer_name = Column(String, nullable=True)
    performer_signature = Column(Text, nullable=True)
    completed_measures = Column(JSON, nullable=False, default=list)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    work_location = relationship("WorkLocation")
    attachments = relationship("PermitAttachment", back_populates="permit", cascade="all, delete-orphan")
    suggestions = relationship("AiSuggestion", back_populates="permit", cascade="all, delete-orphan")
    analysis_runs = relationship("AnalysisRun", back_populates="permit", cascade="all, delete-orphan")


class PermitAttachment(Base):
    __tablename__ = "permit_attachments"

    id = Column(Integer, primary_key=True, autoincrement=True)
    permit_id = Column(Integer, ForeignKey("permits.id"), nullable=False)
    file_name = Column(String, nullable=False)
    original_name = Column(String, nullable=False)
    file_type = Column(String, nullable=False, default="document")
    mime_type = Column(String, nullable=False)
    file_size = Column(Integer, nullable=False)
    file_url = Column(String, nullable=False)
    uploaded_by = Column(Integer, ForeignKey("users.id"), nullable=True)
    description = Column(String, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    permit = relationship("Permit", back_populates="attachments")


class AiSuggestion(Base):
    __tablename__ = "ai_suggestions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    permit_id = Column(Integer, ForeignKey("permits.id"), nullable=False)
    batch_id = Column(String, nullable=True)
    suggestion_type = Column(String, nullable=False, default="improvement")
    field_name = Column(String, nullable=True)
    original_value = Column(Text, nullable=True)
    suggested_value = Column(Text, nullable=False)
    reasoning = Column(Text, nullable=False, default="")
    priority = Column(String, nullable=False, default="medium")
    status = Column(String, nullable=False, default="pending")
    applied_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    permit = relationship("Permit", back_populates="suggestions")


class AnalysisRun(Base):
    __tablename__ = "analysis_runs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    permit_id = Column(Integer, ForeignKey("permits.id"), nullable=False)
    status = Column(String, nullable=False, default="queued")
    error = Column(Text, nullable=True)
    suggestion_count = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    completed_at = Column(DateTime, nullable=True)

    permit = relationship("Permit", back_populates="analysis_runs")


class WebhookConfig(Base):
    __tablename__ = "webhook_configs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String, nullable=False)
    webhook_url = Column(String, nullable=False)
    is_active = Column(Boolean, nullable=False, default=False)
    last_tested_at = Column(DateTime, nullable=True)
    last_test_status = Column(String, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)


class Notification(Base):
    __tablename__ = "notifications"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    title = Column(String, nullable=False)
    message = Column(Text, nullable=False)
    type = Column(String, nullable=False, default="info")
    related_permit_id = Column(Integer, ForeignKey("permits.id"), nullable=True)
    is_read = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    user = relationship("User", back_populates="notifications")


class AppSettings(Base):
    __tablename__ = "app_settings"

    id = Column(Integer, primary_key=True, autoincrement=True)
    app_name = Column(String, nullable=False, default="Arbeitserlaubnis")
    logo_url = Column(String, nullable=True)
    header_background_color = Column(String, nullable=False, default="#1e293b")
    header_text_color = Column(String, nullable=False, default="#ffffff")
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)
