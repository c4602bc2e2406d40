"""
Central constants for the CRM application.
"""
from __future__ import annotations

USER_ROLES = ("admin", "sales")

CUSTOMER_TYPES = ("corporate", "service", "individual")

STAGES = ("care", "send_quote", "consideration", "purchase")

LEVELS = ("cold", "warm", "hot")

CONTACT_STATUSES = ("not_called", "called", "following", "unreachable")

# Product catalog; customers.products may only hold these values.
AVAILABLE_PRODUCTS = (
    "PM Accounting",
    "PM HKD",
    "PM Shopnet",
    "Equipment",
)

SORT_ORDERS = ("asc", "desc")

# Fixed column layout of /export/customers
EXPORT_HEADERS = (
    "ID",
    "Name",
    "Phone",
    "Email",
    "Address",
    "Company Name",
    "Customer Type",
    "Business Type",
    "Products",
    "Scale",
    "Province/City",
    "Customer Source",
    "Staff in Charge",
    "Stage",
    "Level",
    "Contact Status",
    "Customer Feedback",
    "Notes",
    "Appointment Date",
    "Appointment Reminder",
    "Created At",
    "Updated At",
)

UNASSIGNED_STAFF_NAME = "Unassigned"
