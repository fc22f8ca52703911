"""Exception hierarchy for fleetsync.

Three families matter to a sync pass:

- ``PackageError`` subclasses are per-package failures. They are caught at
  the per-package boundary, logged with their category, and the pass
  continues with the next item.
- ``FatalSyncError`` subclasses mean nothing else in the pass can be
  trusted (corrupt local store, catalog or every distribution point
  unreachable). They propagate to the caller of ``sync()``.
- ``LifecycleError`` subclasses reject invalid admin-side edits to titles
  and versions.
"""

from enum import Enum


class ErrorCategory(str, Enum):
    """Distinguishable failure categories for per-package errors."""

    PRE_INSTALL = "pre-install"
    POST_INSTALL = "post-install"
    UNINSTALL = "uninstall"
    MISSING_PACKAGE = "missing-package"
    INSTALL = "install"
    DOWNLOAD = "download"
    CONFIGURATION = "configuration"


class FleetSyncError(Exception):
    """Base exception for all fleetsync errors."""


# =============================================================================
# Per-package errors
# =============================================================================


class PackageError(FleetSyncError):
    """A failure confined to one package.

    Attributes:
        category: Log/report category of the failure.
    """

    category: ErrorCategory = ErrorCategory.INSTALL


class PreInstallError(PackageError):
    """The pre-install script failed; nothing was installed."""

    category = ErrorCategory.PRE_INSTALL


class PostInstallError(PackageError):
    """The post-install script failed; the package is installed but may misbehave."""

    category = ErrorCategory.POST_INSTALL


class InstallError(PackageError):
    """The package could not be installed, or was refused by pre-install checks."""

    category = ErrorCategory.INSTALL


class UninstallError(PackageError):
    """The package could not be removed."""

    category = ErrorCategory.UNINSTALL


class MissingPackageError(PackageError):
    """The package no longer exists server-side and can never be installed."""

    category = ErrorCategory.MISSING_PACKAGE


class DownloadError(PackageError):
    """The package could not be fetched from any usable distribution point."""

    category = ErrorCategory.DOWNLOAD


class CatalogConsistencyError(PackageError):
    """Catalog data references something that does not exist (script, group)."""

    category = ErrorCategory.CONFIGURATION


# =============================================================================
# Fatal errors
# =============================================================================


class FatalSyncError(FleetSyncError):
    """An environment failure that aborts the whole pass."""


class StoreCorruptError(FatalSyncError):
    """A local store file is unreadable or does not match its schema."""


class CatalogUnavailableError(FatalSyncError):
    """The package catalog could not be fetched."""


class NoDistributionPointError(FatalSyncError):
    """Neither the primary nor a cloud distribution point is reachable."""


# =============================================================================
# Lifecycle errors
# =============================================================================


class LifecycleError(FleetSyncError):
    """Base exception for invalid title/version administration."""


class InvalidTransitionError(LifecycleError):
    """A version status change not allowed by the transition table."""


class InvalidAttributeError(LifecycleError):
    """An attribute value rejected by its validation rule."""


class NoSuchVersionError(LifecycleError):
    """The requested version does not exist in the title."""


class DuplicateVersionError(LifecycleError):
    """The version string already exists in the title."""


class ReleasedVersionDeleteError(LifecycleError):
    """The released version cannot be deleted without a replacement."""
