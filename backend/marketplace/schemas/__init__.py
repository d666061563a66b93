"""Pydantic schemas for the rental marketplace API."""

from marketplace.schemas.listing import *
from marketplace.schemas.booking import *
