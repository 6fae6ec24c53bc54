class MicrofeedBaseUrls:
    DEVELOPMENT = "http://192.168.1.7:3000/api"
    PRODUCTION = "https://ruby-rails-boilerplate-3s9t.onrender.com/api"


class MicrofeedApiUrls:
    LOGIN = "/login"
    LOGOUT = "/logout"
    REFRESH = "/refresh"
    SESSIONS = "/sessions"


# Never handed to the refresh coordinator on 401
AUTH_ENDPOINTS = frozenset(
    {MicrofeedApiUrls.LOGIN, MicrofeedApiUrls.REFRESH, MicrofeedApiUrls.LOGOUT}
)
