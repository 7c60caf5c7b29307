"""Tasks module: work-item workflow with an activity audit trail."""
