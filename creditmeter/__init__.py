"""Credit metering service: reservation and usage accounting for billable AI operations."""
