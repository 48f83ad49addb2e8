"""
Directory app - business listings.

Only the listing fields the premium subscription subsystem reads live here:
the owner, a display name and the contact address notifications go to.
Search, categories and moderation are handled elsewhere.
"""
