PROJECT_NAME = "AgentWorks"
API_V1_STR = "/api/v1"
