"""Services for the Okta auth plugin."""
