"""Cloud provider clients consumed by the reaper."""
