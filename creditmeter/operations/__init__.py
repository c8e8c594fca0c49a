"""Business operations for the credit metering service."""
