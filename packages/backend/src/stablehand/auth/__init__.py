"""Authentication — verify the bearer tokens issued by the main app.

Login, registration and sessions live in the dashboard server. This
package only decodes the access token to learn who is connecting.
"""
