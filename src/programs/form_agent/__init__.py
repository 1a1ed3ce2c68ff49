"""
`programs.form_agent`

Tool executors, the bounded tool loop that drives them, and the event channel they write to.
"""
