"""
Order GraphQL queries for Whatnot.

This module contains:
- Paginated order listing filtered by creation date
- Paginated line items of a single order
"""

# Shared line item selection
_LINE_ITEM_FIELDS = """
id
isPickup
quantity
variant {
  sku
}
price {
  amount
  currencyCode
}
product {
  id
  title
}
"""

# Orders sorted by creation, resumed with the stored cursor
ORDERS_QUERY = (
    """
query GetOrders($first: Int, $after: String, $filter: OrderFilterInput) {
  orders(first: $first, after: $after, sortKey: CREATED_AT, filter: $filter) {
    edges {
      cursor
      node {
        id
        createdAt
        cancelledAt
        status
        isGiveaway
        customer {
          id
          username
          displayName
          countryCode
        }
        shippingAddress {
          fullName
          line1
          line2
          city
          state
          postalCode
          phoneNumber
          countryCode
        }
        subtotal {
          amount
          currencyCode
        }
        shippingPrice {
          amount
          currencyCode
        }
        taxation {
          amount
          currencyCode
        }
        total {
          amount
          currencyCode
        }
        salesChannel {
          type
          reference
        }
        trackingInfo {
          trackingCode
          courier
        }
        items(first: 50) {
          edges {
            node {"""
    + _LINE_ITEM_FIELDS
    + """            }
          }
          pageInfo {
            hasNextPage
            endCursor
          }
        }
      }
    }
    pageInfo {
      hasNextPage
      endCursor
    }
  }
}
"""
)

# All line items of one order, for orders with more than one page of items
ORDER_ITEMS_QUERY = (
    """
query GetOrderItems($orderId: ID!, $first: Int!, $after: String) {
  order(id: $orderId) {
    items(first: $first, after: $after) {
      edges {
        node {"""
    + _LINE_ITEM_FIELDS
    + """        }
      }
      pageInfo {
        hasNextPage
        endCursor
      }
    }
  }
}
"""
)
