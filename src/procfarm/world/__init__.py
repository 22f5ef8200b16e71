"""Farm data model: jobs, processors, storage, tunables and content templates."""
