from arios.support.mixins import CommonEqualityMixin


class RetryStrategy:
    """ Decides how long an attempt may take. The base strategy allows no attempts. """
    def __call__(self, attempt, remaining=None):
        return None


class StagedRetryStrategy(RetryStrategy, CommonEqualityMixin):
    """
    A fixed sequence of timeouts, one per attempt. Once the stages are used up, no further attempts are made.

    >>> StagedRetryStrategy(3, 10)(1)
    10
    >>> StagedRetryStrategy(3, 10)(0, remaining=1.5)
    1.5
    """

    def __init__(self, *stages):
        """
        :param stages: the timeout in seconds for the first attempt, the first retry and so on.
        """
        self.stages = tuple(stages)

    def __call__(self, attempt, remaining=None):
        """
        Determines the timeout for the given attempt.
        :param attempt: the zero-based attempt number.
        :param remaining: the time left in an enclosing deadline. The stage timeout is capped by it.
        :return: the timeout in seconds, or None when no further attempt should be made.
        """
        if attempt < 0 or attempt >= len(self.stages):
            return None
        timeout = self.stages[attempt]
        if remaining is not None:
            if remaining <= 0:
                return None
            timeout = min(timeout, remaining)
        return timeout
