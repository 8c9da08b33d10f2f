"""Constants for the Cloud Resource Operator."""

# API Group
API_GROUP = "integreatly.org"
API_VERSION = "v1alpha1"
API_GROUP_VERSION = f"{API_GROUP}/{API_VERSION}"

# Resource Kinds
KIND_REDIS = "Redis"
KIND_BLOB_STORAGE = "BlobStorage"

# Plurals
PLURAL_REDIS = "redis"
PLURAL_BLOB_STORAGE = "blobstorages"

# Resource types (keys of the strategy ConfigMap)
RESOURCE_TYPE_REDIS = "redis"
RESOURCE_TYPE_BLOB_STORAGE = "blobstorage"

# Deployment strategies
AWS_DEPLOYMENT_STRATEGY = "aws"
DEFAULT_DEPLOYMENT_STRATEGY = AWS_DEPLOYMENT_STRATEGY
DEFAULT_TIER = "default"
DEFAULT_REGION = "eu-west-1"

# Credentials issuing
CREDENTIALS_REQUEST_GROUP = "cloudcredential.openshift.io"
CREDENTIALS_REQUEST_VERSION = "v1"
CREDENTIALS_REQUEST_PLURAL = "credentialsrequests"
CREDENTIALS_REQUEST_KIND = "CredentialsRequest"

# Labels
LABEL_MANAGED_BY = f"{API_GROUP}/managed-by"
LABEL_RESOURCE_TYPE = f"{API_GROUP}/resource-type"
LABEL_REQUEST_NAME = f"{API_GROUP}/request-name"

# Finalizers
FINALIZER = f"finalizers.{API_GROUP}/cloud-resource"

# Field Manager
FIELD_MANAGER = "cloud-resource-operator"
CONTROLLER_NAME = "cloud-resource-operator"

# Status phases
PHASE_IN_PROGRESS = "in progress"
PHASE_COMPLETE = "complete"
PHASE_FAILED = "failed"

# Condition Types
COND_READY = "Ready"

# Condition Reasons
REASON_AVAILABLE = "Available"
REASON_PROVISIONING = "Provisioning"
REASON_CONFIGURATION_ERROR = "ConfigurationError"
REASON_RECONCILE_FAILED = "ReconcileFailed"
REASON_DELETION_FAILED = "DeletionFailed"

# Event Reasons
EVENT_REASON_RECONCILE_STARTED = "ReconcileStarted"
EVENT_REASON_RECONCILE_FAILED = "ReconcileFailed"
EVENT_REASON_CONFIGURATION_INVALID = "ConfigurationInvalid"
EVENT_REASON_PROVISIONING = "Provisioning"
EVENT_REASON_AVAILABLE = "Available"
EVENT_REASON_DELETED = "Deleted"
