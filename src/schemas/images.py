from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ImageUploadResponse(CamelModel):
    success: bool = True
    file_id: str
    image_url: str
    name: str


class ImageDeleteRequest(CamelModel):
    image_url: str | None = None
    type: str | None = None
    pet_id: str | None = None


class ImageDeleteResponse(CamelModel):
    success: bool = True
    message: str = "Image deleted successfully"


class UploadHealthResponse(BaseModel):
    ok: bool = True
    now: int


class WarmupResponse(BaseModel):
    ok: bool = True
