"""
Mila - Place taste onboarding.

Learns what kinds of cafés, restaurants, parks and other places a user
enjoys by showing them real venues, then stores the result as a versioned
preference profile (the "BIO") for later personalization.

Packages:
- mila: settings, LLM client, Supabase client, place search, web app, CLI
- onboarding: the adaptive interview engine
"""

__version__ = "1.0.0"
