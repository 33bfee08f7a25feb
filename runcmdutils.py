# This is a module which provides an easy way to the subprocess API
# It will be used as a standardized way to access shell commands and
# to write the log of everything the backup does.



from enum import Enum
import logging
import os
import plumbum as pb
import sys




# This will be set to True as soon as the function init_log() is called.
# It will prevent initializeing the logger compoment more than once.
_logger_is_initialized = False

# This is the logger reference that we use throughout all modules.
_log = logging.getLogger ('lvbackup')

# The log-format to be used for all logging activities
_logFormat = '%(asctime)-15s  %(message)s'

# The log-formatter instance to be used for several logger streams
_logFormatter = logging.Formatter (_logFormat)

# The instance of the console log-handler which is used to write
# all logging data to stdout.
_stdoutHandler = logging.StreamHandler (stream = sys.stdout)

# Stores the environment used to execute all commands.
_env = None



# A container for returning the results of shell-sub-process calls.
class ProcessResult:
    __slots__ = ['returncode', 'stdout', 'stderr']

    def __init__ (self, returncode, stdout = '', stderr = ''):
        self.returncode = returncode
        self.stdout = stdout
        self.stderr = stderr



# Raised by check_cmd() if a command returns a non-zero exit code.
class CommandError(Exception):

    def __init__ (self, args, returncode, stderr = ''):
        self.cmd_args = [str (a) for a in args]
        self.returncode = returncode
        self.stderr = (stderr or '').strip()
        msg = 'Command \'{0}\' failed with exit code {1}'.format (' '.join (self.cmd_args), returncode)
        if (self.stderr):
            msg = '{0}: {1}'.format (msg, self.stderr)
        super().__init__ (msg)



def init_logger():
    global _logger_is_initialized
    if (_logger_is_initialized == True):
        return
    _logger_is_initialized = True
    _stdoutHandler.setFormatter (_logFormatter)
    _log.addHandler (_stdoutHandler)
    _log.setLevel (logging.INFO)
    _log.propagate = False



# Adds a log-file handler to the logger instance. Returns the handler so
# the caller may remove it later with remove_log_file_handler().
def add_log_file_handler (fileName):
    fileHandler = logging.FileHandler (fileName, mode = 'a', encoding = 'UTF-8')
    fileHandler.setFormatter (_logFormatter)
    _log.addHandler (fileHandler)
    return fileHandler



def remove_log_file_handler (fileHandler):
    _log.removeHandler (fileHandler)
    fileHandler.close()



# Removes the handler for writing log messages to the console. This function
# is called when the option '--quiet' has been given, and by every volume
# job whose output belongs into its own log file only.
def remove_console_log_handler():
    global _stdoutHandler
    if (_stdoutHandler != None):
        _log.removeHandler (_stdoutHandler)
        _stdoutHandler = None



def set_log_level (level):
    _log.setLevel (level.value)



def get_log_level():
    return LogLevel (_log.level)



class LogLevel(Enum):
    DEBUG = logging.DEBUG
    INFO = logging.INFO
    WARNING = logging.WARNING
    CRITICAL = logging.CRITICAL
    ERROR = logging.ERROR



def write_log (msg, level = LogLevel.INFO):
    log_functions = {LogLevel.DEBUG: _log.debug, LogLevel.INFO: _log.info, LogLevel.WARNING: _log.warning, LogLevel.CRITICAL: _log.critical, LogLevel.ERROR: _log.error}
    log_functions[level](msg)



# Creates a command wrapper which contains the command name and its arguments.
# This wrapper can then be piped or directly executed by calling exec_cmd().
def mk_cmd (args):
    write_log ('Building command \'{0}\''.format (' '.join ([str (a) for a in args])), level = LogLevel.DEBUG)

    # Commands are looked up through our own PATH, which includes the
    # directories of the volume manager tools.
    with pb.local.env (PATH = _env['PATH']):
        cmd = pb.local[args[0]][[str (a) for a in args[1:]]]
    return cmd



def _decode (data):
    if (isinstance (data, bytes)):
        return data.decode ('utf-8', errors = 'replace')
    return data or ''



# Executes a command built by mk_cmd(). The child process is killed if we
# get interrupted while waiting for it (e.g. by a signal handler raising an
# exception), so no tool keeps writing after its job has given up.
# Values in extra_env are added to the environment of the command only and
# never show up in the log.
def exec_cmd (cmd, *, extra_env = None):
    write_log ('Executing command \'{0}\''.format (str (cmd)), level = LogLevel.INFO)

    env = _env
    if (extra_env):
        env = dict (_env, **extra_env)
    proc = cmd.popen (env = env)
    try:
        stdout, stderr = proc.communicate()
    except BaseException:
        write_log ('Killing command \'{0}\' (pid {1})'.format (str (cmd), proc.pid), level = LogLevel.WARNING)
        proc.kill()
        proc.wait()
        raise

    # Log the output
    stdout = _decode (stdout)
    if (stdout): write_log (stdout.rstrip(), level = LogLevel.INFO)
    stderr = _decode (stderr)
    if (stderr): write_log (stderr.rstrip(), level = LogLevel.ERROR)

    return ProcessResult (proc.returncode, stdout, stderr)



# Calls a shell command and returns its ProcessResult.
def run_cmd (args, *, extra_env = None):
    cmd = mk_cmd (args)
    return exec_cmd (cmd, extra_env = extra_env)



# Same as run_cmd(), but raises a CommandError if the command did not
# succeed. This is used for every step whose failure has to abort a backup.
def check_cmd (args, *, extra_env = None):
    res = run_cmd (args, extra_env = extra_env)
    if (res.returncode != 0):
        raise CommandError (args, res.returncode, res.stderr)
    return res



# Adds the path given as parameter to the current value of the path
# of the environment. If elements of the path to add already exist
# in the environment they will not be added again.
def add_to_env_path (path):
    global _env
    currentPathElements = _env.get ('PATH', '').split (':')
    addPathElements = []
    for p in path.split (':'):
        if (p and not p in currentPathElements):
            addPathElements.append (p)
    newPath = ':'.join (addPathElements + [p for p in currentPathElements if p])
    _env['PATH'] = newPath



# Returns the environment commands are executed with. Only used by the
# tests to look at what add_to_env_path() did.
def get_env():
    return _env



# Initializes this module.
def init_module():
    init_logger()
    # Make a copy of the system environment to have one of our own.
    global _env
    _env = os.environ.copy()



init_module()
