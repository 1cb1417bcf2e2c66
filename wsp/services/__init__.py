"""Application services for wsp.

Services implement the use cases (mirrors, groups, workspaces, removal),
coordinating between the domain layer (core/) and git (git/).
"""
