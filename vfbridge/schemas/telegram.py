from typing import Any, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError

from vfbridge.services.errors import EnvelopeRejected


class TelegramUser(BaseModel):
    id: int
    is_bot: bool = False
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    username: Optional[str] = None


class TelegramChat(BaseModel):
    id: int
    type: Optional[str] = None  # private, group, supergroup, channel
    title: Optional[str] = None
    username: Optional[str] = None


class TelegramInlineButton(BaseModel):
    text: str = ""
    callback_data: Optional[str] = None


class TelegramInlineKeyboard(BaseModel):
    inline_keyboard: list[list[TelegramInlineButton]] = []


class TelegramMessage(BaseModel):
    message_id: Optional[int] = None
    date: Optional[int] = None
    chat: TelegramChat
    # "from" is reserved in Python
    from_user: Optional[TelegramUser] = Field(
        default=None,
        validation_alias=AliasChoices("from", "from_user"),
    )
    text: Optional[str] = None
    reply_markup: Optional[TelegramInlineKeyboard] = None

    model_config = ConfigDict(populate_by_name=True)


class TelegramCallbackQuery(BaseModel):
    id: str
    from_user: Optional[TelegramUser] = Field(
        default=None,
        validation_alias=AliasChoices("from", "from_user"),
    )
    message: Optional[TelegramMessage] = None
    data: Optional[str] = None  # callback_data from button

    model_config = ConfigDict(populate_by_name=True)

    def button_title(self) -> Optional[str]:
        """Title of the clicked button, read from the message keyboard."""
        if not self.message or not self.message.reply_markup or self.data is None:
            return None
        for row in self.message.reply_markup.inline_keyboard:
            for button in row:
                if button.callback_data == self.data:
                    return button.text
        return None


class TelegramUpdate(BaseModel):
    update_id: Optional[int] = None
    message: Optional[TelegramMessage] = None
    callback_query: Optional[TelegramCallbackQuery] = None


class TelegramWebhookResponse(BaseModel):
    ok: bool = True


def parse_update(body: Any) -> TelegramUpdate:
    """Validate a raw webhook body. Raises EnvelopeRejected on bad shape."""
    if not isinstance(body, dict):
        raise EnvelopeRejected(f"Update body must be an object, got {type(body).__name__}")
    try:
        return TelegramUpdate.model_validate(body)
    except ValidationError as e:
        raise EnvelopeRejected(f"Invalid update: {e.error_count()} validation errors") from e
