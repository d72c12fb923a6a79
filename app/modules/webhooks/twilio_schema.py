from pydantic import BaseModel, Field
from typing import Optional

class TwilioStatusCallback(BaseModel):
    """
    Form fields Twilio posts to a message's StatusCallback URL
    """
    message_sid: str = Field(..., alias='MessageSid')
    message_status: str = Field(..., alias='MessageStatus')
    to_number: Optional[str] = Field(None, alias='To')
    from_number: Optional[str] = Field(None, alias='From')
    error_code: Optional[str] = Field(None, alias='ErrorCode')
    error_message: Optional[str] = Field(None, alias='ErrorMessage')

    class Config:
        populate_by_name = True
        extra = 'ignore'

    def error(self) -> Optional[str]:
        if self.error_message:
            return self.error_message
        if self.error_code:
            return f"Twilio error {self.error_code}"
        return None
