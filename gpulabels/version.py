"""Version information for the GPU labelling tools."""

# Both values are meant to be overridden at build or packaging time.
version = "unknown"
git_commit = ""


def get_version_parts():
    """Return the version components: the version and, if known, the commit."""
    parts = [version]
    if git_commit:
        parts.append("commit: " + git_commit)
    return parts


def get_version_string(*more):
    """Return the version components and any extra lines, one per line."""
    return "\n".join([*get_version_parts(), *more])