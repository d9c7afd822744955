# Lambda handlers
