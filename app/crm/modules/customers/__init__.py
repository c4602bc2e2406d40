"""
Customers module.

- Customer records with sales-pipeline fields (stage / level / contact status)
- Filtered, sorted, paginated listing (query.py)
- Allow-listed partial updates
- Soft delete: DELETE flips is_tracking; untracked rows are invisible everywhere
"""
