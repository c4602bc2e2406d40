"""
Reports module: aggregate dashboards and the customer CSV export (admin only).
"""
