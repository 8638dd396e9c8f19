from .home import home, contact, privacy
from .tickets import book, registration_done, ticket_status_page
