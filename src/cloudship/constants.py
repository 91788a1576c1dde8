# ==========================================
# 1. Backends
# ==========================================
BACKEND_AWS_FARGATE = "aws-fargate"
BACKEND_GCP_CLOUDRUN = "gcp-cloudrun"
BACKEND_AZURE_CONTAINER_APPS = "azure-container-apps"

ACTIONS = ["setup", "deploy", "destroy", "logs"]

# ==========================================
# 2. Configuration Defaults
# ==========================================
DEFAULT_DOCKERFILE = "Dockerfile"
DEFAULT_BUILD_CONTEXT = "."
DEFAULT_CONTAINER_PORT = 8080
DEFAULT_DESIRED_COUNT = 1
DEFAULT_HEALTH_CHECK_PATH = "/health"
DEFAULT_HEALTH_CHECK_INTERVAL_SECONDS = 30

REQUIRED_CONFIG_FIELDS = ["serviceName", "region"]

# Keys mapped onto DeploymentSpec fields; everything else lands in options
COMMON_CONFIG_FIELDS = [
    "backend",
    "serviceName",
    "region",
    "dockerfilePath",
    "buildContext",
    "containerPort",
    "cpu",
    "memory",
    "desiredCount",
    "healthCheckPath",
    "healthCheckIntervalSeconds",
    "enableHttps",
    "environmentFile",
    "environmentVariables",
]

SERVICE_NAME_PATTERN = r"^[a-z][a-z0-9-]{0,46}[a-z0-9]$"

# ==========================================
# 3. Rollout / Retry Policy
# ==========================================
MAX_SERVICE_UPDATE_ATTEMPTS = 3
IMAGE_PROPAGATION_BASE_SECONDS = 30
IMAGE_PROPAGATION_INCREMENT_SECONDS = 30
FLAT_RETRY_DELAY_SECONDS = 15
IMAGE_PROBE_RETRY_DELAY_SECONDS = 10

STABILITY_POLL_INTERVAL_SECONDS = 15
STABILITY_TIMEOUT_SECONDS = 600
DRAIN_POLL_INTERVAL_SECONDS = 10
DRAIN_TIMEOUT_SECONDS = 300
DRAIN_MAX_ITERATIONS = 30

LOG_LOOKBACK_MINUTES = 5

# ==========================================
# 4. Build
# ==========================================
BUILD_PLATFORM = "linux/amd64"

# ==========================================
# 5. AWS
# ==========================================
AWS_DEFAULT_CPU = "256"
AWS_DEFAULT_MEMORY = "512"
AWS_POLICY_ECS_TASK_EXECUTION = "arn:aws:iam::aws:policy/service-role/AmazonECSTaskExecutionRolePolicy"
AWS_ECS_SERVICE_PRINCIPAL = "ecs.amazonaws.com"
AWS_ECS_TASKS_PRINCIPAL = "ecs-tasks.amazonaws.com"
AWS_LOG_STREAM_PREFIX = "ecs"
AWS_LOG_RETENTION_DAYS = 14
AWS_LOG_FETCH_LIMIT = 100
AWS_LOG_POLL_INTERVAL_SECONDS = 2
AWS_NAME_MAX_LENGTH = 32
AWS_SG_DELETE_ATTEMPTS = 5
AWS_SG_DELETE_BACKOFF_SECONDS = 5

# ==========================================
# 6. GCP
# ==========================================
GCP_DEFAULT_CPU = "1"
GCP_DEFAULT_MEMORY = "512Mi"
GCP_DEFAULT_TIMEOUT_SECONDS = 300
GCP_REQUIRED_SERVICES = ["run.googleapis.com", "artifactregistry.googleapis.com"]
GCP_SCOPES = ["https://www.googleapis.com/auth/cloud-platform"]
GCP_INVOKER_ROLE = "roles/run.invoker"
GCP_LOG_POLL_INTERVAL_SECONDS = 10
GCP_LOG_PAGE_SIZE = 50

# ==========================================
# 7. Azure
# ==========================================
AZURE_DEFAULT_CPU = "0.5"
AZURE_DEFAULT_MEMORY = "1Gi"
AZURE_MANAGEMENT_SCOPE = "https://management.azure.com/.default"
AZURE_ACR_PULL_ROLE_ID = "7f951dda-4ed3-4680-a7ca-43fe172d538d"
AZURE_ACR_TOKEN_USER = "00000000-0000-0000-0000-000000000000"
AZURE_MANAGED_BY_TAG = ("managed-by", "cloudship")
AZURE_LOG_POLL_INTERVAL_SECONDS = 10
AZURE_LOG_FETCH_LIMIT = 100

