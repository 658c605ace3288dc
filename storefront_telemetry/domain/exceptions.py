class SimulatedCrashError(RuntimeError):
    """
    The intentional fault injected by crash tests. Nothing in the instrumentation layer catches it;
    it is expected to terminate the process so the crash reporter sees a real crash.
    """
