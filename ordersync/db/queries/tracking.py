"""
Tracking GraphQL mutations for Whatnot.
"""

# Attach one tracking code to one or more orders
ADD_TRACKING_CODE_MUTATION = """
mutation AddTracking($input: AddTrackingCodeInput!) {
  addTrackingCode(input: $input) {
    userErrors {
      field
      message
    }
  }
}
"""
