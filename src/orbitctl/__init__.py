"""Deploy, update and inspect the Orbit server on Kubernetes and OpenShift."""
