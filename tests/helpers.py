from io import BytesIO

from PIL import Image

from src.core.auth import AuthenticatedUser

TEST_USER = AuthenticatedUser(id="64b7f0c2a1b2c3d4e5f60718", firebase_uid="firebase-uid-1")
PET_ID = "64b7f0c2a1b2c3d4e5f60799"


def make_image(width: int = 64, height: int = 64, fmt: str = "PNG") -> bytes:
    img = Image.new("RGB", (width, height), color="red")
    buffer = BytesIO()
    img.save(buffer, format=fmt)
    return buffer.getvalue()
