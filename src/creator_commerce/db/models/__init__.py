"""
Database models for the Creator Commerce platform
"""
from .tenant import Tenant, TenantStatus
from .audit import ActorType, AuditLog
from .subscription import (
    Subscription,
    SubscriptionActivity,
    SubscriptionActivityType,
    SubscriptionFrequency,
    SubscriptionSettings,
    SubscriptionStatus,
)
from .project import CreatorProject, ProjectFile, ProjectRevision, ProjectStatus, RevisionStatus
from .treasury import DrawRequest, DrawRequestStatus
from .tax import CorrectionType, PayeeType, TaxForm, TaxFormStatus, TaxFormType
from .esign import (
    DocumentStatus,
    EsignAction,
    EsignAuditEntry,
    EsignDocument,
    EsignSigner,
    SignatureType,
    SignerRole,
    SignerStatus,
)
from .scheduling import BookingStatus, WelcomeCallAvailability, WelcomeCallBooking
from .relationship import AgentRelationship, PersonType

__all__ = [
    "Tenant",
    "TenantStatus",
    "ActorType",
    "AuditLog",
    "Subscription",
    "SubscriptionActivity",
    "SubscriptionActivityType",
    "SubscriptionFrequency",
    "SubscriptionSettings",
    "SubscriptionStatus",
    "CreatorProject",
    "ProjectFile",
    "ProjectRevision",
    "ProjectStatus",
    "RevisionStatus",
    "DrawRequest",
    "DrawRequestStatus",
    "CorrectionType",
    "PayeeType",
    "TaxForm",
    "TaxFormStatus",
    "TaxFormType",
    "DocumentStatus",
    "EsignAction",
    "EsignAuditEntry",
    "EsignDocument",
    "EsignSigner",
    "SignatureType",
    "SignerRole",
    "SignerStatus",
    "BookingStatus",
    "WelcomeCallAvailability",
    "WelcomeCallBooking",
    "AgentRelationship",
    "PersonType",
]
