from enum import Enum
from typing import List, Literal
from pydantic import BaseModel, ConfigDict, Field

# Value objects are frozen once built; camelCase aliases are the interchange format.
_VALUE = ConfigDict(frozen=True, populate_by_name=True, protected_namespaces=())


class ChatMessage(BaseModel):
    model_config = _VALUE

    role: Literal["user", "assistant", "system"]
    content: str


class ChatRequest(BaseModel):
    model_config = _VALUE

    base_url: str
    api_key: str
    model: str
    messages: List[ChatMessage]
    stream: bool = False


class ChatResponse(BaseModel):
    model_config = _VALUE

    content: str = ""
    prompt_tokens: int = 0
    completion_tokens: int = 0
    status_code: int = 0
    raw_body: str = ""  # only set on soft failures, truncated
    error: str = ""  # empty = success

    @property
    def ok(self) -> bool:
        return not self.error


class CheckItem(str, Enum):
    CONNECTIVITY = "connectivity"
    CHAT = "chat"
    STREAM = "stream"
    MODELS = "models"
    MULTI_TURN = "multi_turn"


class CheckStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    SUCCESS = "success"
    WARNING = "warning"
    FAILED = "failed"

    @property
    def severity(self) -> int:
        return _SEVERITY[self]


_SEVERITY = {
    CheckStatus.PENDING: 0,
    CheckStatus.RUNNING: 1,
    CheckStatus.SUCCESS: 2,
    CheckStatus.WARNING: 3,
    CheckStatus.FAILED: 4,
}


class CheckResult(BaseModel):
    model_config = _VALUE

    item: CheckItem
    status: CheckStatus
    latency: int = 0  # ms
    ttft: int = 0  # ms, stream check only
    message: str = ""
    detail: str = ""
    token_in: int = Field(default=0, alias="tokenIn")
    token_out: int = Field(default=0, alias="tokenOut")


class FullCheckResult(BaseModel):
    model_config = _VALUE

    provider_id: str = Field(default="", alias="providerID")
    provider_name: str = Field(default="", alias="providerName")
    base_url: str = Field(default="", alias="baseURL")
    model: str = ""
    protocol: str = ""
    results: List[CheckResult] = []
    model_list: List[str] = Field(default_factory=list, alias="modelList")
    start_time: str = Field(default="", alias="startTime")
    end_time: str = Field(default="", alias="endTime")
    total_latency: int = Field(default=0, alias="totalLatency")


class ReportSummary(BaseModel):
    model_config = _VALUE

    total: int = 0
    success: int = 0
    failed: int = 0
    warning: int = 0


class Report(BaseModel):
    model_config = _VALUE

    generated_at: str = Field(alias="generatedAt")
    results: List[FullCheckResult]
    summary: ReportSummary


class ProviderConfig(BaseModel):
    """One provider target as handed over by the configuration store."""

    model_config = _VALUE

    base_url: str = Field(alias="baseURL")
    api_key: str = Field(default="", alias="apiKey")
    model: str
    provider_id: str = Field(default="", alias="providerID")
    provider_name: str = Field(default="", alias="providerName")
    protocol: str = "openai"
