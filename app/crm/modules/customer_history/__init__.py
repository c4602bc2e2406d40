"""
Customer history module.

Contact, purchase and payment logs hanging off a customer. Append-only.
"""
