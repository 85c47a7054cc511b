"""
puppetchef - declarative browser automation recipes.

A recipe names a target URL and an ordered list of tasks; each task is a
sequence of steps that dispatch to plugin commands against one browser page:
- Conditional steps (`when`)
- Captured results (`register`) reused through {{ }} templates
- Tolerated failures (`ignore_errors`)
"""
