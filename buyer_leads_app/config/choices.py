# Fixed option sets for buyer leads
CITIES = ["Chandigarh", "Mohali", "Zirakpur", "Panchkula", "Other"]

PROPERTY_TYPES = ["Apartment", "Villa", "Plot", "Office", "Retail"]

BHK_OPTIONS = ["1", "2", "3", "4", "Studio"]

PURPOSES = ["Buy", "Rent"]

TIMELINES = ["0-3m", "3-6m", ">6m", "Exploring"]

SOURCES = ["Website", "Referral", "Walk-in", "Call", "Other"]

# Pipeline order matters for display
STATUSES = ["New", "Qualified", "Contacted", "Visited", "Negotiation", "Converted", "Dropped"]

DEFAULT_STATUS = "New"

# Residential types need a bedroom count
BHK_REQUIRED_FOR = ("Apartment", "Villa")

# Search / list options
SORT_FIELDS = ["updatedAt", "createdAt", "fullName"]
SORT_ORDERS = ["asc", "desc"]
DEFAULT_PAGE = 1
DEFAULT_LIMIT = 10
MAX_LIMIT = 100

# History entries shown on a detail view
RECENT_HISTORY_LIMIT = 5

# CSV column order, import and export
CSV_COLUMNS = [
    "fullName",
    "email",
    "phone",
    "city",
    "propertyType",
    "bhk",
    "purpose",
    "budgetMin",
    "budgetMax",
    "timeline",
    "source",
    "notes",
    "tags",
    "status",
]
