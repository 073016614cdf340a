from pydantic import BaseModel, ConfigDict, Field
from typing import Optional


class MessageKey(BaseModel):
    from_me: bool = Field(False, alias="fromMe")
    remote_jid: Optional[str] = Field(None, alias="remoteJid")

    model_config = ConfigDict(populate_by_name=True)


class ExtendedTextMessage(BaseModel):
    text: Optional[str] = None


class MessageContent(BaseModel):
    conversation: Optional[str] = None
    extended_text_message: Optional[ExtendedTextMessage] = Field(None, alias="extendedTextMessage")

    model_config = ConfigDict(populate_by_name=True)


class MessageData(BaseModel):
    key: MessageKey = MessageKey()
    message: Optional[MessageContent] = None
    push_name: Optional[str] = Field(None, alias="pushName")

    model_config = ConfigDict(populate_by_name=True)


class EvolutionWebhookPayload(BaseModel):
    event: str
    instance: Optional[str] = None
    data: Optional[MessageData] = None


class InboundMessage(BaseModel):
    phone_number: str
    text: str
    sender_name: str


class DeployRequest(BaseModel):
    secret: str = ""
    deploy_id: str = Field(..., alias="deployId")
    branch: str = "main"

    model_config = ConfigDict(populate_by_name=True)
