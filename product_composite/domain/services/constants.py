# Outbound bindings: logical names the publisher maps onto Kafka topics.
PRODUCTS_BINDING = "products-out-0"
RECOMMENDATIONS_BINDING = "recommendations-out-0"
REVIEWS_BINDING = "reviews-out-0"

# Message header carrying the partition key (always the productId)
PARTITION_KEY_HEADER = "partitionKey"

# Product id the fallback reports as missing instead of synthesizing a product
FALLBACK_NOT_FOUND_PRODUCT_ID = 13

# Domain service kinds (one consumer / store per kind)
KIND_PRODUCT = "product"
KIND_RECOMMENDATION = "recommendation"
KIND_REVIEW = "review"

ALL_KINDS = {KIND_PRODUCT, KIND_RECOMMENDATION, KIND_REVIEW}

# Dead-letter topic suffix for events that keep failing on the consumer side
DLQ_SUFFIX = ".dlq"
