from typing import List, Literal, Optional
from pydantic import BaseModel, EmailStr
from datetime import datetime

# --------------------------
# User & Auth Models
# --------------------------
Role = Literal["donor", "ngo", "volunteer"]

class RegisterIn(BaseModel):
    email: EmailStr
    password: str
    display_name: str
    role: Role
    phone: Optional[str] = None
    organization_name: Optional[str] = None
    address: Optional[str] = None

class TokenOut(BaseModel):
    access_token: str
    token_type: str = "bearer"
    role: str
    user_id: str

class VerifyEmailIn(BaseModel):
    token: str

class LatLng(BaseModel):
    lat: float
    lng: float

class ProfileUpdate(BaseModel):
    display_name: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    organization_name: Optional[str] = None
    bio: Optional[str] = None
    photo_url: Optional[str] = None
    location: Optional[LatLng] = None

# --------------------------
# Donations
# --------------------------
class Location(BaseModel):
    lat: Optional[float] = None
    lng: Optional[float] = None
    address: Optional[str] = None

class DonationIn(BaseModel):
    # required fields are checked by the lifecycle so the error names all of them
    title: Optional[str] = None
    description: Optional[str] = None
    food_type: Optional[str] = None
    quantity: Optional[str] = None
    expiry_time: Optional[datetime] = None
    location: Optional[Location] = None
    image_urls: List[str] = []
    contact_phone: Optional[str] = None
    country_code: Optional[str] = None

class DonationUpdate(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None
    food_type: Optional[str] = None
    quantity: Optional[str] = None
    expiry_time: Optional[datetime] = None
    location: Optional[Location] = None
    image_urls: Optional[List[str]] = None
    contact_phone: Optional[str] = None
    country_code: Optional[str] = None

class StatusIn(BaseModel):
    status: Literal["pending", "accepted", "completed", "cancelled"]
    note: Optional[str] = None

# --------------------------
# Chats
# --------------------------
class ChatOpenIn(BaseModel):
    other_user_id: str
    donation_id: Optional[str] = None

class MessageIn(BaseModel):
    text: str

# --------------------------
# Moderation / complaints
# --------------------------
class ComplaintIn(BaseModel):
    donation_id: str
    reason: str

class SuspendIn(BaseModel):
    days: Optional[int] = None
    until: Optional[datetime] = None

class WarnIn(BaseModel):
    reason: Optional[str] = None

# --------------------------
# Inventory
# --------------------------
class InventoryIn(BaseModel):
    name: Optional[str] = None
    quantity: Optional[str] = None
    unit: Optional[str] = None
    category: Optional[str] = None
    expiry_date: Optional[datetime] = None
    low_stock_threshold: Optional[float] = None

# --------------------------
# AI / captcha
# --------------------------
class AnalyzeIn(BaseModel):
    image_base64: str

class RecipesIn(BaseModel):
    ingredients: List[str]

class RecipeIn(BaseModel):
    title: str
    description: Optional[str] = None
    difficulty: Optional[str] = None
    time: Optional[str] = None
    ingredients: List[str] = []
    instructions: List[str] = []

class CaptchaIn(BaseModel):
    token: Optional[str] = None
