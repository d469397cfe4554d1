"""Client for streams, key-value buckets and object stores with fallback to a cold-storage sidecar."""