"""CRM directory integration: transport, lookup, scanning and caching."""

from crm_profile_sync.crm.base import (
    CRMAPIError,
    CRMNotFoundError,
    CRMBadRequestError,
    AmbiguousMatchError,
    CRMTransportError,
    CRMAuthenticationError,
)
from crm_profile_sync.crm.bursts import BurstScheduler, DirectoryScanError, plan_bursts
from crm_profile_sync.crm.cache import DirectoryCache
from crm_profile_sync.crm.models import DirectoryUser, PageListing, PageFailure, BurstSpan, ViewCriteria
from crm_profile_sync.crm.users_client import CRMUsersClient
from crm_profile_sync.crm.validation import AttributeValidationError, validate_custom_attributes
