# highlevel_auth/webhooks/models.py
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class MarketplaceWebhookEvent(BaseModel):
    """App lifecycle event posted by the HighLevel marketplace."""
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    type: str
    app_id: Optional[str] = Field(default=None, alias="appId")
    version_id: Optional[str] = Field(default=None, alias="versionId")
    install_type: Optional[str] = Field(default=None, alias="installType")
    company_id: Optional[str] = Field(default=None, alias="companyId")
    location_id: Optional[str] = Field(default=None, alias="locationId")
    user_id: Optional[str] = Field(default=None, alias="userId")
    company_name: Optional[str] = Field(default=None, alias="companyName")
    timestamp: Optional[str] = None
    webhook_id: Optional[str] = Field(default=None, alias="webhookId")


class WebhookResult(BaseModel):
    status: str
    event_type: Optional[str] = None
    resource_id: Optional[str] = None
    detail: Optional[str] = None
