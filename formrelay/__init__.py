"""FormRelay: form submission intake, spam defenses and notification delivery."""
